# nfe_validator/chave.py
"""
Chave de acesso da NF-e (44 dígitos) e dígito verificador módulo 11
"""

import logging
from typing import Dict

from .exceptions import AccessKeyFormatError, CheckDigitMismatch
from .utils import only_digits

logger = logging.getLogger(__name__)

TAMANHO_CHAVE = 44
PREFIXO_ID = "NFe"

# Layout da chave: (campo, início, fim)
LAYOUT_CHAVE = (
    ("cUF", 0, 2),
    ("AAMM", 2, 6),
    ("CNPJ", 6, 20),
    ("mod", 20, 22),
    ("serie", 22, 25),
    ("nNF", 25, 34),
    ("tpEmis", 34, 35),
    ("cNF", 35, 43),
    ("cDV", 43, 44),
)


def calcular_digito_verificador(base: str) -> int:
    """
    Calcula o DV (módulo 11) dos 43 primeiros dígitos da chave.

    Pesos de 2 a 9 aplicados da direita para a esquerda, voltando a 2
    depois do 9. Resto 0 ou 1 resulta em DV 0.
    """
    peso = 2
    soma = 0
    for digito in reversed(base):
        soma += int(digito) * peso
        peso += 1
        if peso > 9:
            peso = 2

    resto = soma % 11
    if resto in (0, 1):
        return 0
    return 11 - resto


def validar_chave(chave: str) -> None:
    """
    Valida formato e dígito verificador de uma chave de acesso.

    Raises:
        AccessKeyFormatError: chave sem exatamente 44 dígitos
        CheckDigitMismatch: DV não confere
    """
    chave = chave or ""
    digitos = only_digits(chave)
    if len(digitos) != TAMANHO_CHAVE:
        raise AccessKeyFormatError(
            f"chave deve ter exatamente {TAMANHO_CHAVE} dígitos (tem {len(digitos)})"
        )

    limpa = chave.strip()
    if len(limpa) != TAMANHO_CHAVE or limpa != digitos:
        raise AccessKeyFormatError("chave deve conter apenas números")

    esperado = calcular_digito_verificador(limpa[:43])
    informado = int(limpa[43])
    if esperado != informado:
        raise CheckDigitMismatch(esperado, informado)


def chave_valida(chave: str) -> bool:
    """Atalho booleano para validar_chave"""
    try:
        validar_chave(chave)
    except (AccessKeyFormatError, CheckDigitMismatch) as e:
        logger.debug(f"Chave {chave!r} rejeitada: {e}")
        return False
    return True


def extrair_chave_do_id(id_nfe: str) -> str:
    """
    Extrai os 44 dígitos da chave do atributo infNFe/@Id.

    'NFe3525...4648' (47 caracteres) -> '3525...4648'. Um Id que já tem
    44 dígitos é devolvido como está; qualquer outro formato retorna ''.
    """
    id_nfe = (id_nfe or "").strip()
    if id_nfe.startswith(PREFIXO_ID) and len(id_nfe) == TAMANHO_CHAVE + len(PREFIXO_ID):
        return id_nfe[len(PREFIXO_ID):]
    if len(id_nfe) == TAMANHO_CHAVE and id_nfe.isdigit() and id_nfe.isascii():
        return id_nfe
    return ""


def decompor_chave(chave: str) -> Dict[str, str]:
    """
    Separa uma chave válida nos campos do layout (cUF, AAMM, CNPJ, ...).

    Raises:
        AccessKeyFormatError / CheckDigitMismatch se a chave for inválida
    """
    validar_chave(chave)
    chave = chave.strip()
    return {campo: chave[inicio:fim] for campo, inicio, fim in LAYOUT_CHAVE}
