# nfe_validator/schemas.py
"""
Atualização dos schemas XSD da NF-e (pacote v4 publicado em release)
"""

import io
import logging
import zipfile
from pathlib import Path
from typing import List, Union

import requests

from .exceptions import SchemaDownloadError

logger = logging.getLogger(__name__)

SCHEMAS_URL = "https://github.com/fabyo/sefaz-scraper/releases/latest/download/schemas-v4-latest.zip"
DOWNLOAD_TIMEOUT = 30


def detectar_tipo_arquivo(content: bytes) -> str:
    """Detecta se o conteúdo é ZIP ou HTML"""
    if content.startswith(b"PK"):  # ZIP magic bytes
        return "zip"
    elif content.lstrip().startswith(b"<"):
        return "html"
    return "unknown"


def baixar_schemas(destino: Union[str, Path] = "schemas/v4", url: str = SCHEMAS_URL) -> List[Path]:
    """
    Baixa o ZIP de schemas e extrai os .xsd direto em destino, sem as
    pastas internas do pacote (schemas/v4/...).

    Returns:
        Caminhos dos XSDs gravados

    Raises:
        SchemaDownloadError: download falhou, conteúdo não é ZIP ou não há XSD
    """
    destino = Path(destino)
    logger.info(f"Baixando schemas de {url}")

    try:
        response = requests.get(url, timeout=DOWNLOAD_TIMEOUT, allow_redirects=True)
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        raise SchemaDownloadError(f"Download dos schemas falhou: {e}") from e

    tipo = detectar_tipo_arquivo(response.content)
    if tipo != "zip":
        raise SchemaDownloadError(
            f"Arquivo não é ZIP (tipo: {tipo}, magic bytes: {response.content[:4].hex()})"
        )

    gravados: List[Path] = []
    try:
        with zipfile.ZipFile(io.BytesIO(response.content)) as zip_ref:
            xsd_files = [info for info in zip_ref.infolist()
                         if not info.is_dir() and info.filename.lower().endswith(".xsd")]
            logger.debug(f"ZIP contém {len(zip_ref.infolist())} arquivos ({len(xsd_files)} XSD)")
            if not xsd_files:
                raise SchemaDownloadError("Nenhum arquivo XSD encontrado no ZIP")

            destino.mkdir(parents=True, exist_ok=True)
            for info in xsd_files:
                alvo = destino / Path(info.filename).name
                alvo.write_bytes(zip_ref.read(info))
                gravados.append(alvo)
    except zipfile.BadZipFile as e:
        raise SchemaDownloadError(f"Erro ao extrair ZIP: {e}") from e

    logger.info(f"{len(gravados)} schema(s) atualizados em {destino}")
    return gravados
