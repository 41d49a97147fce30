# nfe_validator/models.py
"""
Modelos de dados da validação de NF-e
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

CODIGO_NAO_COMPREENDIDO = "999"
MENSAGEM_NAO_COMPREENDIDA = "Resposta da SEFAZ não parseada."

# Modelo do documento -> tipo reportado no resultado
TIPOS_POR_MODELO = {
    "55": "nfe",
    "65": "nfce",
}


class EnvelopeKind(Enum):
    """Formato em que o XML chegou"""
    ENVELOPED = "nfeProc"  # nota + protocolo, como devolvida pela SEFAZ
    BARE = "NFe"           # nota sem protocolo


class StatusCategory(Enum):
    AUTORIZADO = "autorizado"
    CANCELADO = "cancelado"
    INUTILIZADO = "inutilizado"
    DENEGADO = "denegado"
    NAO_ENCONTRADO = "nao_encontrado"
    REJEITADO = "rejeitado"
    DESCONHECIDO = "desconhecido"


# Códigos cStat com categoria própria
CATEGORIAS_CSTAT = {
    "100": StatusCategory.AUTORIZADO,
    "101": StatusCategory.CANCELADO,
    "102": StatusCategory.INUTILIZADO,
    "110": StatusCategory.DENEGADO,
    "217": StatusCategory.NAO_ENCONTRADO,
}

CODIGOS_AUTORIZADOS = frozenset({"100", "110"})


class Phase(Enum):
    """Fases da validação, na ordem em que rodam"""
    LEITURA = "leitura"
    SCHEMA = "xsd"
    PARSE = "parse"
    CHAVE = "chave"
    SEFAZ = "sefaz"
    DONE = "done"


class ValidationMode(Enum):
    XSD_ONLY = "xsd"          # apenas XSD, offline
    SKIP_SEFAZ = "skip-sefaz"  # XSD + parse, sem consulta
    FULL = "full"             # XSD + parse + consulta SEFAZ


@dataclass(frozen=True)
class DadosNFe:
    """Campos extraídos do XML da NF-e"""
    modelo: str = ""
    serie: str = ""
    numero: str = ""
    emitente_cnpj: str = ""
    emitente_nome: str = ""
    destinatario_doc: str = ""
    destinatario_nome: str = ""
    valor_total: str = ""  # mantido como texto (ex: "1500.00")
    data_emissao: str = ""
    natureza_operacao: str = ""

    @property
    def tipo(self) -> str:
        return TIPOS_POR_MODELO.get(self.modelo, "nfe")

    def to_dict(self) -> Dict[str, str]:
        return {
            "modelo": self.modelo,
            "serie": self.serie,
            "numero": self.numero,
            "emitente_cnpj": self.emitente_cnpj,
            "emitente_razao": self.emitente_nome,
            "destinatario_doc": self.destinatario_doc,
            "destinatario_nome": self.destinatario_nome,
            "valor_total_nota": self.valor_total,
            "data_emissao": self.data_emissao,
            "natureza_operacao": self.natureza_operacao,
        }


@dataclass(frozen=True)
class NFeDocument:
    """XML já estruturado: bytes originais, formato detectado e dados"""
    conteudo: bytes = field(repr=False)
    envelope: EnvelopeKind
    id_nfe: str
    dados: DadosNFe


@dataclass(frozen=True)
class StatusSefaz:
    """Situação da NF-e na SEFAZ (cStat / xMotivo)"""
    codigo: str
    mensagem: str
    compreendido: bool = True  # False quando a resposta caiu no sentinela 999

    @property
    def autorizado(self) -> bool:
        return self.codigo in CODIGOS_AUTORIZADOS

    @property
    def categoria(self) -> StatusCategory:
        categoria = CATEGORIAS_CSTAT.get(self.codigo)
        if categoria is not None:
            return categoria
        if self.is_rejeitado:
            return StatusCategory.REJEITADO
        return StatusCategory.DESCONHECIDO

    @property
    def is_cancelado(self) -> bool:
        return self.codigo == "101"

    @property
    def is_denegado(self) -> bool:
        return self.codigo == "110"

    @property
    def is_nao_encontrado(self) -> bool:
        return self.codigo == "217"

    @property
    def is_rejeitado(self) -> bool:
        # 2xx a 6xx são rejeições, exceto os códigos com categoria própria
        if not self.codigo or self.codigo in CATEGORIAS_CSTAT:
            return False
        return self.codigo[0] in "23456"

    @property
    def is_valido(self) -> bool:
        """Autorizada ou cancelada: em ambos os casos a nota consta na base"""
        return self.codigo in ("100", "101")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "autorizado": self.autorizado,
            "codigo": self.codigo,
            "mensagem": self.mensagem,
        }


@dataclass(frozen=True)
class PhaseError:
    """Erro terminal de uma fase"""
    fase: Phase
    mensagem: str

    def __str__(self) -> str:
        return self.mensagem


@dataclass(frozen=True)
class ValidationResult:
    """Resultado único devolvido ao chamador; nunca alterado depois de pronto"""
    tipo: str = "nfe"
    chave_acesso: str = ""
    valido_xsd: bool = False
    dados: Optional[DadosNFe] = None
    sefaz: Optional[StatusSefaz] = None
    erro: Optional[PhaseError] = None

    def __post_init__(self):
        if self.sefaz is not None and not self.chave_acesso:
            raise ValueError("StatusSefaz exige chave de acesso")

    @property
    def autorizado(self) -> bool:
        return self.sefaz is not None and self.sefaz.autorizado

    @property
    def ok(self) -> bool:
        return self.erro is None

    @property
    def fase_final(self) -> Phase:
        """Fase em que a validação terminou: a do erro, ou DONE"""
        return self.erro.fase if self.erro is not None else Phase.DONE

    def to_dict(self) -> Dict[str, Any]:
        sefaz = self.sefaz.to_dict() if self.sefaz else {"autorizado": False, "codigo": "", "mensagem": ""}
        resultado: Dict[str, Any] = {
            "tipo": self.tipo,
            "chave_acesso": self.chave_acesso,
            "valido_xsd": self.valido_xsd,
            "sefaz": sefaz,
        }
        if self.dados is not None:
            resultado["dados_xml"] = self.dados.to_dict()
        if self.erro is not None:
            resultado["erro"] = self.erro.mensagem
        return resultado
