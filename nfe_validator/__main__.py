# nfe_validator/__main__.py
"""
Linha de comando: python -m nfe_validator [opções] <arquivo_xml> [xsd]

Exemplos:
    python -m nfe_validator --xsd nota.xml schemas/v4/procNFe_v4.00.xsd
    python -m nfe_validator --skip-sefaz --env homolog nota.xml
    python -m nfe_validator nota.xml
    python -m nfe_validator --chave 35250732409620000175550010000037471011544648
    python -m nfe_validator --update-schemas
"""

import argparse
import json
import logging
import sys

from .config import load_settings
from .exceptions import SchemaDownloadError, TrustError
from .models import ValidationMode
from .pipeline import ValidationPipeline
from .schemas import baixar_schemas
from .utils import setup_logger

logger = logging.getLogger(__name__)


def _imprimir(dados: dict) -> None:
    print(json.dumps(dados, ensure_ascii=False, indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nfe_validator",
        description="Valida XML de NF-e/NFC-e: XSD, estrutura, chave de acesso e situação na SEFAZ",
    )
    modo = parser.add_mutually_exclusive_group()
    modo.add_argument("--xsd", action="store_true", help="Apenas validação XSD (offline)")
    modo.add_argument("--skip-sefaz", action="store_true", help="Valida XSD + parse, sem consultar a SEFAZ")
    parser.add_argument("--env", default=None, help="Ambiente: 'production' ou 'homolog' (lê .env.<env>)")
    parser.add_argument("--chave", help="Consulta a situação apenas pela chave de acesso")
    parser.add_argument("--update-schemas", action="store_true", help="Baixa o pacote de schemas XSD mais recente")
    parser.add_argument("--log-level", default=None, help="Nível de log (padrão: LOG_LEVEL ou INFO)")
    parser.add_argument("xml", nargs="?", help="Arquivo XML da NF-e")
    parser.add_argument("xsd_path", nargs="?", help="Arquivo XSD ou pasta de schemas (padrão: NFE_SCHEMAS_DIR)")
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = load_settings(args.env)
    setup_logger(args.log_level or settings.log_level)

    if args.update_schemas:
        try:
            arquivos = baixar_schemas(settings.schemas_dir)
        except SchemaDownloadError as e:
            logger.error(f"❌ {e}")
            return 1
        _imprimir({"schemas_dir": settings.schemas_dir, "arquivos": [a.name for a in arquivos]})
        return 0

    if args.xsd:
        mode = ValidationMode.XSD_ONLY
    elif args.skip_sefaz:
        mode = ValidationMode.SKIP_SEFAZ
    else:
        mode = ValidationMode.FULL

    if not args.chave and not args.xml:
        parser.error("caminho do XML é obrigatório (ou use --chave)")

    consultar_sefaz = bool(args.chave) or mode is ValidationMode.FULL
    try:
        pipeline = ValidationPipeline.from_settings(settings, consultar_sefaz=consultar_sefaz)
    except TrustError as e:
        logger.error(f"❌ Falha na configuração mTLS: {e}")
        _imprimir({"tipo": "nfe", "erro": f"Falha na configuração mTLS (Certificados): {e}"})
        return 1

    if args.chave:
        _imprimir(pipeline.validate_chave(args.chave).to_dict())
        return 0

    xsd_path = args.xsd_path or settings.schemas_dir
    try:
        result = pipeline.validate_file(args.xml, xsd_path, mode)
    except OSError as e:
        logger.error(f"❌ Erro ao ler arquivo XML: {e}")
        _imprimir({"tipo": "nfe", "erro": f"Erro ao ler arquivo XML: {e}"})
        return 1

    _imprimir(result.to_dict())
    return 0


if __name__ == "__main__":
    sys.exit(main())
