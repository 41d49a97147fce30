# nfe_validator/xml_parser.py
"""
Estruturação do XML da NF-e (nfeProc ou NFe avulsa)
"""

import logging
from typing import NamedTuple, Optional

from lxml import etree

from .exceptions import MalformedDocument, MissingIdentifier, ParseError
from .models import DadosNFe, EnvelopeKind, NFeDocument
from .utils import choose_first_non_empty, local_name, only_digits

logger = logging.getLogger(__name__)


class _Tentativa(NamedTuple):
    """Resultado de um decodificador: infNFe encontrado ou a falha"""
    envelope: Optional[EnvelopeKind] = None
    inf_nfe: Optional[etree._Element] = None
    falha: Optional[ParseError] = None


def _filho(elemento, nome: str):
    """Primeiro filho direto com o nome local informado"""
    if elemento is None:
        return None
    for filho in elemento:
        if local_name(filho.tag) == nome:
            return filho
    return None


def _caminho(elemento, *nomes: str):
    for nome in nomes:
        elemento = _filho(elemento, nome)
        if elemento is None:
            return None
    return elemento


def _texto(elemento, *nomes: str) -> str:
    alvo = _caminho(elemento, *nomes)
    if alvo is None or alvo.text is None:
        return ""
    return alvo.text.strip()


def _inf_nfe_da_nota(nfe, envelope: EnvelopeKind) -> _Tentativa:
    inf_nfe = _filho(nfe, "infNFe")
    if inf_nfe is None:
        return _Tentativa(falha=MalformedDocument(f"{envelope.value} sem infNFe"))
    if not (inf_nfe.get("Id") or "").strip():
        return _Tentativa(falha=MissingIdentifier(f"{envelope.value}/infNFe sem atributo Id"))
    return _Tentativa(envelope=envelope, inf_nfe=inf_nfe)


def _decodificar_nfeproc(raiz) -> _Tentativa:
    if local_name(raiz.tag) != "nfeProc":
        return _Tentativa(falha=MalformedDocument("raiz não é nfeProc"))
    nfe = _filho(raiz, "NFe")
    if nfe is None:
        return _Tentativa(falha=MalformedDocument("nfeProc sem NFe"))
    return _inf_nfe_da_nota(nfe, EnvelopeKind.ENVELOPED)


def _decodificar_nfe(raiz) -> _Tentativa:
    if local_name(raiz.tag) != "NFe":
        return _Tentativa(falha=MalformedDocument(f"raiz <{local_name(raiz.tag)}> não é nfeProc nem NFe"))
    return _inf_nfe_da_nota(raiz, EnvelopeKind.BARE)


# Ordem importa: nota com protocolo primeiro
DECODIFICADORES = (_decodificar_nfeproc, _decodificar_nfe)


class NFeParser:
    """Lê os campos principais de um XML de NF-e/NFC-e"""

    def __init__(self):
        self._parser = etree.XMLParser(
            resolve_entities=False,
            no_network=True,
            remove_blank_text=True,
            huge_tree=False,
        )

    def parse(self, xml_bytes: bytes) -> NFeDocument:
        """
        Estrutura o XML nos formatos nfeProc (com protocolo) ou NFe (avulsa).

        Raises:
            MalformedDocument: XML mal formado ou raiz não reconhecida
            MissingIdentifier: infNFe sem atributo Id
        """
        try:
            raiz = etree.fromstring(xml_bytes, parser=self._parser)
        except etree.XMLSyntaxError as e:
            raise MalformedDocument(f"XML mal formado: {e}") from e
        except ValueError as e:
            raise MalformedDocument(f"conteúdo XML inválido: {e}") from e

        falhas = []
        for decodificar in DECODIFICADORES:
            tentativa = decodificar(raiz)
            if tentativa.falha is None:
                return self._montar_documento(xml_bytes, tentativa)
            falhas.append(tentativa.falha)

        for falha in falhas:
            if isinstance(falha, MissingIdentifier):
                raise falha
        raise falhas[-1]

    def _montar_documento(self, xml_bytes: bytes, tentativa: _Tentativa) -> NFeDocument:
        inf_nfe = tentativa.inf_nfe
        id_nfe = inf_nfe.get("Id").strip()

        emit = _filho(inf_nfe, "emit")
        dest = _filho(inf_nfe, "dest")

        dados = DadosNFe(
            modelo=_texto(inf_nfe, "ide", "mod"),
            serie=_texto(inf_nfe, "ide", "serie"),
            numero=_texto(inf_nfe, "ide", "nNF"),
            emitente_cnpj=only_digits(choose_first_non_empty(_texto(emit, "CNPJ"), _texto(emit, "CPF"))),
            emitente_nome=_texto(emit, "xNome"),
            destinatario_doc=only_digits(choose_first_non_empty(_texto(dest, "CNPJ"), _texto(dest, "CPF"))),
            destinatario_nome=_texto(dest, "xNome"),
            valor_total=_texto(inf_nfe, "total", "ICMSTot", "vNF"),
            data_emissao=_texto(inf_nfe, "ide", "dhEmi"),
            natureza_operacao=_texto(inf_nfe, "ide", "natOp"),
        )

        logger.debug(f"NF-e estruturada ({tentativa.envelope.value}): Id={id_nfe}, nNF={dados.numero}")
        return NFeDocument(
            conteudo=xml_bytes,
            envelope=tentativa.envelope,
            id_nfe=id_nfe,
            dados=dados,
        )
