# nfe_validator/config.py
"""
Configuração do validador, lida das variáveis de ambiente (.env.<ambiente>)
"""

import logging
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

AMBIENTE_PRODUCAO = "production"
AMBIENTE_HOMOLOGACAO = "homolog"


class NFeSettings(BaseSettings):
    """Configuração carregada das variáveis de ambiente (mesmos nomes do .env)"""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    env: str = Field(AMBIENTE_PRODUCAO, validation_alias="NFE_ENV")

    cert_dir: str = Field("", validation_alias="NFE_CERT_DIR")
    cert_key_file: str = Field("key.pem", validation_alias="NFE_CERT_KEY_FILE")
    cert_pub_file: str = Field("cert.pem", validation_alias="NFE_CERT_PUB_FILE")
    cert_password: Optional[str] = Field(None, validation_alias="NFE_CERT_PASSWORD")

    cnpj: str = Field("", validation_alias="NFE_CNPJ")
    uf_ibge: str = Field("", validation_alias="NFE_UF_IBGE")

    consulta_url: str = Field("", validation_alias="SEFAZ_CONSULTA_URL")
    dist_url: str = Field("", validation_alias="SEFAZ_DIST_URL")
    timeout_seconds: float = Field(15.0, validation_alias="SEFAZ_TIMEOUT")
    strict_decode: bool = Field(False, validation_alias="SEFAZ_STRICT_DECODE")

    schemas_dir: str = Field("schemas/v4", validation_alias="NFE_SCHEMAS_DIR")
    log_level: str = Field("INFO", validation_alias="LOG_LEVEL")

    @property
    def is_producao(self) -> bool:
        return self.env == AMBIENTE_PRODUCAO

    @property
    def tp_amb(self) -> str:
        """tpAmb da SEFAZ: 1 = produção, 2 = homologação"""
        return "1" if self.is_producao else "2"


def load_settings(env: Optional[str] = None) -> NFeSettings:
    """
    Carrega a configuração do arquivo .env.<env> (ex: .env.production).
    Se o arquivo não existir, segue apenas com as variáveis do sistema.
    """
    if env is None:
        settings = NFeSettings()
        env = settings.env

    env_file = Path(f".env.{env}")
    if not env_file.is_file():
        logger.warning(f"Arquivo de ambiente '{env_file}' não encontrado. Usando variáveis de ambiente do sistema.")
        return NFeSettings(env=env)

    logger.debug(f"Carregando configuração de {env_file}")
    return NFeSettings(_env_file=env_file, env=env)
