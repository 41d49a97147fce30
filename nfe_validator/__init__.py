"""
Validador de NF-e/NFC-e: XSD, estrutura, chave de acesso e situação na SEFAZ
"""

from .certificate_manager import CertificateInfo, TrustBundle, TrustStoreBuilder
from .chave import calcular_digito_verificador, chave_valida, extrair_chave_do_id, validar_chave
from .config import NFeSettings, load_settings
from .exceptions import NFeValidatorError
from .models import (
    DadosNFe,
    EnvelopeKind,
    NFeDocument,
    Phase,
    PhaseError,
    StatusCategory,
    StatusSefaz,
    ValidationMode,
    ValidationResult,
)
from .pipeline import ValidationPipeline
from .sefaz_client import SefazClient
from .xml_parser import NFeParser
from .xsd_validator import XSDValidator

__version__ = "1.0.0"
