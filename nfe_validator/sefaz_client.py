# nfe_validator/sefaz_client.py
"""
Consulta de situação da NF-e na SEFAZ (NFeConsultaProtocolo4) via SOAP 1.2 + mTLS
"""

import logging
import re
import threading
import time
from typing import Optional

import requests
from requests.adapters import HTTPAdapter

from .certificate_manager import TrustBundle
from .config import NFeSettings
from .exceptions import NetworkError, ProtocolError
from .models import CODIGO_NAO_COMPREENDIDO, MENSAGEM_NAO_COMPREENDIDA, StatusSefaz

logger = logging.getLogger(__name__)

SOAP_ACTION = "http://www.portalfiscal.inf.br/nfe/wsdl/NFeConsultaProtocolo4/nfeConsultaNF"
CONTENT_TYPE = f'application/soap+xml; charset=utf-8; action="{SOAP_ACTION}"'

# Sem quebras de linha: SEFAZ SP rejeita envelope com espaços extras
SOAP_TEMPLATE = (
    '<soap12:Envelope xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance" '
    'xmlns:xsd="http://www.w3.org/2001/XMLSchema" '
    'xmlns:soap12="http://www.w3.org/2003/05/soap-envelope">'
    "<soap12:Body>"
    '<nfeDadosMsg xmlns="http://www.portalfiscal.inf.br/nfe/wsdl/NFeConsultaProtocolo4">'
    '<consSitNFe xmlns="http://www.portalfiscal.inf.br/nfe" versao="4.00">'
    "<tpAmb>{tp_amb}</tpAmb><xServ>CONSULTAR</xServ><chNFe>{chave}</chNFe>"
    "</consSitNFe>"
    "</nfeDadosMsg>"
    "</soap12:Body>"
    "</soap12:Envelope>"
)

URL_SVRS = "https://www.sefazvirtual.fazenda.gov.br/NFeConsultaProtocolo4/NFeConsultaProtocolo4.asmx"
URL_SVRS_HOMOLOGACAO = "https://hom.sefazvirtual.fazenda.gov.br/NFeConsultaProtocolo4/NFeConsultaProtocolo4.asmx"

# cUF (2 primeiros dígitos da chave) -> webservice de produção
URL_MAP = {
    "31": "https://nfe.fazenda.mg.gov.br/nfe2/services/NFeConsultaProtocolo4",  # MG
    "50": "https://nfe.sefaz.ms.gov.br/ws/NFeConsultaProtocolo4",  # MS
    "51": URL_SVRS,  # MT
    "52": URL_SVRS,  # GO
    "35": "https://nfe.fazenda.sp.gov.br/ws/nfeconsultaprotocolo4.asmx",  # SP
    "33": "https://nfe.fazenda.rj.gov.br/ws/NFeConsultaProtocolo4",  # RJ
    "41": "https://nfe.sefa.pr.gov.br/nfe/NFeConsultaProtocolo4",  # PR
    "53": "https://nfe.sefaz.df.gov.br/ws/NFeConsultaProtocolo4",  # DF
}

CSTAT_REGEX = re.compile(r"<cStat>(\d+)</cStat>")
XMOTIVO_REGEX = re.compile(r"<xMotivo>(.*?)</xMotivo>")

POOL_MAXSIZE = 10
IDLE_TIMEOUT = 30.0


def montar_envelope(chave: str, tp_amb: str = "1") -> str:
    """Envelope SOAP 1.2 do consSitNFe"""
    return SOAP_TEMPLATE.format(tp_amb=tp_amb, chave=chave)


def decodificar_resposta(body: str, strict: bool = False) -> StatusSefaz:
    """
    Extrai cStat e xMotivo da resposta SOAP.

    Sem cStat, devolve o sentinela 999 com compreendido=False; no modo
    estrito levanta ProtocolError.
    """
    cstat_match = CSTAT_REGEX.search(body)
    xmotivo_match = XMOTIVO_REGEX.search(body)

    xmotivo = MENSAGEM_NAO_COMPREENDIDA
    if xmotivo_match:
        xmotivo = xmotivo_match.group(1)
    elif "<xMotivo>" in body:
        # xMotivo com quebra de linha escapa da regex
        xmotivo = body.split("<xMotivo>", 1)[1].split("</xMotivo>", 1)[0]

    if not cstat_match:
        if strict:
            raise ProtocolError(f"Resposta da SEFAZ sem cStat: {body[:200]!r}")
        logger.warning("Resposta da SEFAZ sem cStat, usando código 999")
        return StatusSefaz(codigo=CODIGO_NAO_COMPREENDIDO, mensagem=xmotivo, compreendido=False)

    return StatusSefaz(codigo=cstat_match.group(1), mensagem=xmotivo)


def resolver_url(chave: str, settings: NFeSettings, url: Optional[str] = None) -> str:
    """URL explícita > SEFAZ_CONSULTA_URL > tabela por UF"""
    if url:
        return url
    if settings.consulta_url:
        return settings.consulta_url
    if not settings.is_producao:
        return URL_SVRS_HOMOLOGACAO
    cuf = chave[:2] if len(chave) == 44 else settings.uf_ibge
    return URL_MAP.get(cuf, URL_SVRS)


class TLSAdapter(HTTPAdapter):
    """
    Adaptador HTTPS com o contexto SSL do TrustBundle (TLS 1.2 + certificado
    do cliente). Conexões ociosas há mais de 30s são descartadas.
    """

    def __init__(self, ssl_context, idle_timeout: float = IDLE_TIMEOUT, **kwargs):
        self.ssl_context = ssl_context
        self.idle_timeout = idle_timeout
        self._ultimo_uso = time.monotonic()
        self._idle_lock = threading.Lock()
        kwargs.setdefault("pool_maxsize", POOL_MAXSIZE)
        kwargs.setdefault("max_retries", 0)
        super(TLSAdapter, self).__init__(**kwargs)

    def init_poolmanager(self, *args, **kwargs):
        kwargs["ssl_context"] = self.ssl_context
        return super(TLSAdapter, self).init_poolmanager(*args, **kwargs)

    def proxy_manager_for(self, *args, **kwargs):
        kwargs["ssl_context"] = self.ssl_context
        return super(TLSAdapter, self).proxy_manager_for(*args, **kwargs)

    def send(self, request, **kwargs):
        with self._idle_lock:
            agora = time.monotonic()
            if agora - self._ultimo_uso > self.idle_timeout:
                logger.debug("Descartando conexões ociosas com a SEFAZ")
                self.poolmanager.clear()
            self._ultimo_uso = agora
        return super(TLSAdapter, self).send(request, **kwargs)


class SefazClient:
    """Cliente do webservice NFeConsultaProtocolo4"""

    def __init__(self, bundle: TrustBundle, settings: NFeSettings, session: Optional[requests.Session] = None):
        self.bundle = bundle
        self.settings = settings
        self.timeout = settings.timeout_seconds
        self.strict = settings.strict_decode

        if session is None:
            session = requests.Session()
            session.mount("https://", TLSAdapter(bundle.ssl_context))
        self.session = session

    def consultar_situacao(self, chave: str, url: Optional[str] = None) -> StatusSefaz:
        """
        Consulta a situação da NF-e pela chave de acesso.

        Raises:
            NetworkError: falha de conexão, timeout ou leitura da resposta
            ProtocolError: resposta ilegível com SEFAZ_STRICT_DECODE ligado
        """
        url = resolver_url(chave, self.settings, url)
        envelope = montar_envelope(chave, self.settings.tp_amb)
        headers = {"Content-Type": CONTENT_TYPE}

        logger.debug(f"Consultando chave={chave} em {url}")
        try:
            resp = self.session.post(
                url,
                data=envelope.encode("utf-8"),
                headers=headers,
                timeout=self.timeout,
            )
            body = resp.text
        except requests.exceptions.RequestException as e:
            logger.error(f"Erro na requisição HTTP: {e}")
            raise NetworkError(f"erro na conexão mTLS/webservice: {e}") from e

        if resp.status_code != 200:
            logger.warning(f"SEFAZ respondeu HTTP {resp.status_code} para chave={chave}")
        logger.debug(f"Resposta SEFAZ (raw):\n{body}")

        status = decodificar_resposta(body, strict=self.strict)
        logger.info(f"SEFAZ cStat={status.codigo} ({status.categoria.value}): {status.mensagem}")
        return status

    def close(self) -> None:
        self.session.close()
