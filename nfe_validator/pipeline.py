# nfe_validator/pipeline.py
"""
Pipeline de validação da NF-e: XSD -> Parse -> Chave -> SEFAZ
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Iterable, List, Optional, Union

from .certificate_manager import TrustStoreBuilder
from .chave import extrair_chave_do_id, validar_chave
from .config import NFeSettings
from .exceptions import (
    AccessKeyError,
    NetworkError,
    ParseError,
    ProtocolError,
    SchemaViolation,
)
from .models import Phase, PhaseError, ValidationMode, ValidationResult
from .sefaz_client import SefazClient
from .xml_parser import NFeParser
from .xsd_validator import XSDValidator

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

MENSAGEM_CHAVE_AUSENTE = "Chave de acesso não encontrada no XML (infNFe/@Id)"


class ValidationPipeline:
    """
    Executa as fases da validação em ordem. Cada fase só acrescenta ao
    resultado; a primeira falha encerra a execução com um PhaseError.
    """

    def __init__(
        self,
        xsd_validator: XSDValidator,
        parser: Optional[NFeParser] = None,
        sefaz_client: Optional[SefazClient] = None,
        exigir_chave: bool = True,
    ):
        self.xsd_validator = xsd_validator
        self.parser = parser or NFeParser()
        self.sefaz_client = sefaz_client
        self.exigir_chave = exigir_chave

    @classmethod
    def from_settings(cls, settings: NFeSettings, consultar_sefaz: bool = True, **kwargs) -> "ValidationPipeline":
        """
        Monta o pipeline a partir da configuração. Com consultar_sefaz,
        carrega os certificados (TrustError interrompe a montagem).
        """
        sefaz_client = None
        if consultar_sefaz:
            bundle = TrustStoreBuilder().build(
                settings.cert_dir,
                settings.cert_key_file,
                settings.cert_pub_file,
                settings.cert_password,
            )
            sefaz_client = SefazClient(bundle, settings)
        return cls(XSDValidator(), NFeParser(), sefaz_client, **kwargs)

    def validate(
        self,
        xml_bytes: bytes,
        xsd_path: PathLike,
        mode: ValidationMode = ValidationMode.FULL,
    ) -> ValidationResult:
        if mode is ValidationMode.FULL and self.sefaz_client is None:
            raise ValueError("Modo FULL exige um SefazClient configurado")

        # Fase 1: XSD
        try:
            self.xsd_validator.validate(xml_bytes, xsd_path)
        except SchemaViolation as e:
            logger.info(f"[{Phase.SCHEMA.value}] {e}")
            return ValidationResult(erro=PhaseError(Phase.SCHEMA, f"XML inválido contra XSD: {e}"))

        if mode is ValidationMode.XSD_ONLY:
            return ValidationResult(valido_xsd=True)

        # Fase 2: Parse
        try:
            documento = self.parser.parse(xml_bytes)
        except ParseError as e:
            logger.info(f"[{Phase.PARSE.value}] {e}")
            return ValidationResult(
                valido_xsd=True,
                erro=PhaseError(Phase.PARSE, f"Erro ao estruturar NFe (Parse): {e}"),
            )

        dados = documento.dados
        tipo = dados.tipo

        # Fase 3: Chave
        chave = extrair_chave_do_id(documento.id_nfe)
        if not chave:
            erro = None
            if self.exigir_chave:
                erro = PhaseError(Phase.CHAVE, MENSAGEM_CHAVE_AUSENTE)
            logger.info(f"[{Phase.CHAVE.value}] Id sem chave utilizável: {documento.id_nfe!r}")
            return ValidationResult(tipo=tipo, valido_xsd=True, dados=dados, erro=erro)

        try:
            validar_chave(chave)
        except AccessKeyError as e:
            logger.info(f"[{Phase.CHAVE.value}] {chave}: {e}")
            return ValidationResult(
                tipo=tipo,
                chave_acesso=chave,
                valido_xsd=True,
                dados=dados,
                erro=PhaseError(Phase.CHAVE, f"Chave de acesso inválida: {e}"),
            )

        if mode is not ValidationMode.FULL:
            return ValidationResult(tipo=tipo, chave_acesso=chave, valido_xsd=True, dados=dados)

        # Fase 4: SEFAZ
        try:
            status = self.sefaz_client.consultar_situacao(chave)
        except (NetworkError, ProtocolError) as e:
            logger.error(f"[{Phase.SEFAZ.value}] {chave}: {e}")
            return ValidationResult(
                tipo=tipo,
                chave_acesso=chave,
                valido_xsd=True,
                dados=dados,
                erro=PhaseError(Phase.SEFAZ, f"Falha na comunicação com a SEFAZ: {e}"),
            )

        logger.info(f"[{Phase.DONE.value}] {chave}: cStat {status.codigo} - {status.mensagem}")
        return ValidationResult(tipo=tipo, chave_acesso=chave, valido_xsd=True, dados=dados, sefaz=status)

    def validate_file(
        self,
        xml_path: PathLike,
        xsd_path: PathLike,
        mode: ValidationMode = ValidationMode.FULL,
    ) -> ValidationResult:
        """Lê o arquivo e valida. Arquivo ilegível levanta OSError"""
        xml_bytes = Path(xml_path).read_bytes()
        return self.validate(xml_bytes, xsd_path, mode)

    def validate_chave(self, chave: str) -> ValidationResult:
        """
        Consulta a situação na SEFAZ só pela chave, sem XML.

        Único ponto em que a chave não vem de um infNFe/@Id: o resultado
        traz chave_acesso sem dados extraídos.
        """
        if self.sefaz_client is None:
            raise ValueError("Consulta por chave exige um SefazClient configurado")

        chave = (chave or "").strip()
        try:
            validar_chave(chave)
        except AccessKeyError as e:
            logger.info(f"[{Phase.CHAVE.value}] {chave!r}: {e}")
            return ValidationResult(erro=PhaseError(Phase.CHAVE, f"Chave de acesso inválida: {e}"))

        try:
            status = self.sefaz_client.consultar_situacao(chave)
        except (NetworkError, ProtocolError) as e:
            logger.error(f"[{Phase.SEFAZ.value}] {chave}: {e}")
            return ValidationResult(
                chave_acesso=chave,
                erro=PhaseError(Phase.SEFAZ, f"Falha na comunicação com a SEFAZ: {e}"),
            )

        return ValidationResult(chave_acesso=chave, sefaz=status)

    def validate_batch(
        self,
        paths: Iterable[PathLike],
        xsd_path: PathLike,
        mode: ValidationMode = ValidationMode.FULL,
        max_workers: int = 4,
    ) -> List[ValidationResult]:
        """
        Valida vários arquivos em paralelo. O resultado segue a ordem de
        entrada; arquivo ilegível vira um resultado com erro de leitura.
        """
        if mode is ValidationMode.FULL and self.sefaz_client is None:
            raise ValueError("Modo FULL exige um SefazClient configurado")

        def _validar(path: PathLike) -> ValidationResult:
            try:
                return self.validate_file(path, xsd_path, mode)
            except OSError as e:
                logger.warning(f"[{Phase.LEITURA.value}] {path}: {e}")
                return ValidationResult(erro=PhaseError(Phase.LEITURA, f"Erro ao ler arquivo XML: {e}"))

        paths = list(paths)
        logger.info(f"Validando {len(paths)} arquivo(s) com {max_workers} worker(s)")
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            return list(executor.map(_validar, paths))
