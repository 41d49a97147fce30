# nfe_validator/xsd_validator.py
"""
Validador XSD para XMLs de NF-e
"""

import logging
import threading
from pathlib import Path
from typing import Dict, Union

from lxml import etree

from .exceptions import SchemaViolation
from .utils import local_name

logger = logging.getLogger(__name__)

# Raiz do documento -> XSD do pacote de schemas v4
ROOT_XSD_MAP = {
    "nfeProc": "procNFe_v4.00.xsd",
    "NFe": "nfe_v4.00.xsd",
}


class XSDValidator:
    """
    Valida XMLs contra schemas XSD.

    Schemas compilados ficam em cache por caminho; o cache e a validação
    são protegidos por lock, então uma instância pode ser compartilhada
    entre threads.
    """

    def __init__(self):
        self._schemas: Dict[Path, etree.XMLSchema] = {}
        self._lock = threading.Lock()
        self._parser = etree.XMLParser(resolve_entities=False, no_network=True)

    def _carregar_schema(self, xsd_path: Path) -> etree.XMLSchema:
        schema = self._schemas.get(xsd_path)
        if schema is not None:
            return schema

        if not xsd_path.is_file():
            raise SchemaViolation(f"Arquivo XSD não encontrado: {xsd_path}")

        try:
            schema_doc = etree.parse(str(xsd_path))
            schema = etree.XMLSchema(schema_doc)
        except (etree.XMLSyntaxError, etree.XMLSchemaParseError) as e:
            raise SchemaViolation(f"Erro ao carregar schema {xsd_path.name}: {e}") from e

        logger.debug(f"[XSD] Schema compilado: {xsd_path}")
        self._schemas[xsd_path] = schema
        return schema

    def resolver_xsd(self, xml_bytes: bytes, xsd_path: Union[str, Path]) -> Path:
        """
        Resolve o XSD a usar. Se xsd_path for um diretório, escolhe o
        arquivo pela raiz do documento (nfeProc ou NFe).
        """
        xsd_path = Path(xsd_path)
        if not xsd_path.is_dir():
            return xsd_path

        try:
            raiz = etree.fromstring(xml_bytes, parser=self._parser)
        except etree.XMLSyntaxError as e:
            raise SchemaViolation(str(e), getattr(e, "lineno", None)) from e

        nome = local_name(raiz.tag)
        arquivo = ROOT_XSD_MAP.get(nome)
        if arquivo is None:
            raise SchemaViolation(f"Nenhum XSD conhecido para a raiz <{nome}>")
        return xsd_path / arquivo

    def validate(self, xml_bytes: bytes, xsd_path: Union[str, Path]) -> None:
        """
        Valida o XML contra o XSD (arquivo ou diretório de schemas).

        Raises:
            SchemaViolation: com a linha e a mensagem do primeiro erro
        """
        xsd_path = self.resolver_xsd(xml_bytes, xsd_path)

        try:
            xml_doc = etree.fromstring(xml_bytes, parser=self._parser)
        except etree.XMLSyntaxError as e:
            raise SchemaViolation(str(e), getattr(e, "lineno", None)) from e

        with self._lock:
            schema = self._carregar_schema(xsd_path)
            if schema.validate(xml_doc):
                logger.debug(f"[XSD] XML válido contra {xsd_path.name}")
                return
            erros = list(schema.error_log)

        primeiro = erros[0]
        logger.info(f"[XSD] XML inválido: {len(erros)} erro(s), primeiro na linha {primeiro.line}")
        raise SchemaViolation(primeiro.message, primeiro.line)
