import datetime
from pathlib import Path
from typing import Callable

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

NFE_NS = "http://www.portalfiscal.inf.br/nfe"

CHAVE_VALIDA = "35250732409620000175550010000037471011544648"
CHAVE_DV_ERRADO = "35250732409620000175550010000037471011544649"

SCHEMA_XSD = f"""<?xml version="1.0" encoding="UTF-8"?>
<xs:schema xmlns:xs="http://www.w3.org/2001/XMLSchema"
           xmlns="{NFE_NS}"
           targetNamespace="{NFE_NS}"
           elementFormDefault="qualified">
  <xs:element name="NFe" type="TNFe"/>
  <xs:element name="nfeProc">
    <xs:complexType>
      <xs:sequence>
        <xs:element ref="NFe"/>
        <xs:any processContents="skip" minOccurs="0" maxOccurs="unbounded"/>
      </xs:sequence>
      <xs:attribute name="versao" type="xs:string"/>
    </xs:complexType>
  </xs:element>
  <xs:complexType name="TNFe">
    <xs:sequence>
      <xs:element name="infNFe">
        <xs:complexType>
          <xs:sequence>
            <xs:element name="ide">
              <xs:complexType>
                <xs:sequence>
                  <xs:any processContents="skip" minOccurs="0" maxOccurs="unbounded"/>
                </xs:sequence>
              </xs:complexType>
            </xs:element>
            <xs:any processContents="skip" minOccurs="0" maxOccurs="unbounded"/>
          </xs:sequence>
          <xs:attribute name="Id" type="xs:string"/>
          <xs:attribute name="versao" type="xs:string"/>
        </xs:complexType>
      </xs:element>
    </xs:sequence>
  </xs:complexType>
</xs:schema>
"""


def _inf_nfe(id_nfe: str, modelo: str, dest: str, emit_doc: str) -> str:
    return (
        f'<infNFe Id="{id_nfe}" versao="4.00">'
        "<ide><cUF>35</cUF><natOp>VENDA DE MERCADORIA</natOp>"
        f"<mod>{modelo}</mod><serie>1</serie><nNF>3747</nNF>"
        "<dhEmi>2025-07-10T10:00:00-03:00</dhEmi></ide>"
        f"<emit>{emit_doc}<xNome>EMPRESA EMITENTE LTDA</xNome></emit>"
        f"<dest>{dest}<xNome>FULANO DE TAL</xNome></dest>"
        "<total><ICMSTot><vNF>1500.00</vNF></ICMSTot></total>"
        "</infNFe>"
    )


@pytest.fixture()
def make_nfe_xml() -> Callable[..., bytes]:
    """Fábrica de XMLs de NF-e: nfeProc (padrão) ou NFe avulsa."""

    def _make(
        id_nfe: str = f"NFe{CHAVE_VALIDA}",
        enveloped: bool = True,
        modelo: str = "55",
        dest: str = "<CPF>123.456.789-09</CPF>",
        emit_doc: str = "<CNPJ>32.409.620/0001-75</CNPJ>",
        namespace: bool = True,
    ) -> bytes:
        xmlns = f' xmlns="{NFE_NS}"' if namespace else ""
        inf = _inf_nfe(id_nfe, modelo, dest, emit_doc)
        if enveloped:
            corpo = (
                f'<nfeProc{xmlns} versao="4.00">'
                f"<NFe>{inf}</NFe>"
                '<protNFe versao="4.00"><infProt><cStat>100</cStat></infProt></protNFe>'
                "</nfeProc>"
            )
        else:
            corpo = f"<NFe{xmlns}>{inf}</NFe>"
        return ('<?xml version="1.0" encoding="UTF-8"?>\n' + corpo).encode("utf-8")

    return _make


@pytest.fixture()
def nfeproc_xml(make_nfe_xml) -> bytes:
    return make_nfe_xml()


@pytest.fixture()
def xsd_file(tmp_path: Path) -> Path:
    path = tmp_path / "procNFe_teste.xsd"
    path.write_text(SCHEMA_XSD, encoding="utf-8")
    return path


@pytest.fixture()
def schemas_dir(tmp_path: Path) -> Path:
    """Pasta no formato do pacote v4, com os dois XSDs de raiz."""
    pasta = tmp_path / "schemas" / "v4"
    pasta.mkdir(parents=True)
    (pasta / "procNFe_v4.00.xsd").write_text(SCHEMA_XSD, encoding="utf-8")
    (pasta / "nfe_v4.00.xsd").write_text(SCHEMA_XSD, encoding="utf-8")
    return pasta


def gerar_certificado(cn: str, dias: int = 365, key=None):
    """Certificado autoassinado (EC P-256) para testes."""
    key = key or ec.generate_private_key(ec.SECP256R1())
    nome = x509.Name([
        x509.NameAttribute(NameOID.COUNTRY_NAME, "BR"),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "ICP-Brasil"),
        x509.NameAttribute(NameOID.COMMON_NAME, cn),
    ])
    agora = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(nome)
        .issuer_name(nome)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(agora - datetime.timedelta(days=1))
        .not_valid_after(agora + datetime.timedelta(days=dias))
        .sign(key, hashes.SHA256())
    )
    return key, cert


def gravar_par_pem(pasta: Path, key, cert, key_name: str = "key.pem", cert_name: str = "cert.pem") -> None:
    (pasta / key_name).write_bytes(
        key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )
    (pasta / cert_name).write_bytes(cert.public_bytes(serialization.Encoding.PEM))


@pytest.fixture(scope="session")
def client_pair():
    return gerar_certificado("EMPRESA TESTE LTDA:32409620000175")


@pytest.fixture()
def cert_dir(tmp_path: Path, client_pair) -> Path:
    """
    Pasta de certificados: par do cliente em PEM, uma CA em DER (.crt),
    um arquivo corrompido e um arquivo que não é certificado.
    """
    pasta = tmp_path / "cert"
    pasta.mkdir()
    key, cert = client_pair
    gravar_par_pem(pasta, key, cert)

    _, ca = gerar_certificado("AC TESTE RAIZ")
    (pasta / "ac_raiz.crt").write_bytes(ca.public_bytes(serialization.Encoding.DER))
    (pasta / "corrompido.pem").write_bytes(b"-----BEGIN CERTIFICATE-----\nnao e base64\n-----END CERTIFICATE-----\n")
    (pasta / "leiame.txt").write_text("não é certificado", encoding="utf-8")
    (pasta / "subpasta.pem").mkdir()
    return pasta


@pytest.fixture()
def chave_valida() -> str:
    return CHAVE_VALIDA


@pytest.fixture()
def chave_dv_errado() -> str:
    return CHAVE_DV_ERRADO


@pytest.fixture()
def cert_factory():
    return gerar_certificado
