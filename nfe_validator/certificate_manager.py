# nfe_validator/certificate_manager.py
"""
Certificado digital do cliente e cadeia de confiança para o mTLS com a SEFAZ
Suporte para par PEM (chave + certificado) e para bundles .pfx/.p12
"""

import logging
import os
import re
import ssl
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple, Union

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID
from urllib3.util.ssl_ import create_urllib3_context

from .exceptions import CertDirError, ClientCertError
from .utils import only_digits

logger = logging.getLogger(__name__)

EXTENSOES_CERTIFICADO = (".crt", ".pem", ".cer")
EXTENSOES_PKCS12 = (".pfx", ".p12")
DIAS_AVISO_EXPIRACAO = 30


@dataclass(frozen=True)
class CertificateInfo:
    """Informações do certificado digital"""
    subject_name: str
    issuer_name: str
    serial_number: str
    not_valid_before: datetime
    not_valid_after: datetime
    cn: str  # Common Name
    cnpj: str = ""
    cpf: str = ""
    fingerprint: str = ""

    @property
    def is_expired(self) -> bool:
        """Verifica se o certificado está expirado"""
        return datetime.now(timezone.utc) > self.not_valid_after

    @property
    def is_valid(self) -> bool:
        agora = datetime.now(timezone.utc)
        return self.not_valid_before < agora < self.not_valid_after

    @property
    def days_until_expiry(self) -> int:
        """Dias até expirar"""
        delta = self.not_valid_after - datetime.now(timezone.utc)
        return max(0, delta.days)

    @property
    def friendly_name(self) -> str:
        """Nome amigável do certificado"""
        if self.cnpj:
            return f"{self.cn} (CNPJ: {self.cnpj})"
        elif self.cpf:
            return f"{self.cn} (CPF: {self.cpf})"
        return self.cn

    @classmethod
    def from_certificate(cls, certificate: x509.Certificate) -> "CertificateInfo":
        """
        Extrai as informações de um certificado ICP-Brasil.

        O CN de um e-CNPJ/e-CPF costuma ser 'RAZAO SOCIAL:12345678000195';
        quando o CN não traz o documento, tenta o atributo serialNumber.
        """
        subject = certificate.subject

        cns = subject.get_attributes_for_oid(NameOID.COMMON_NAME)
        cn = str(cns[0].value) if cns else ""

        cnpj, cpf = _documento_do_texto(cn)
        if not cnpj and not cpf:
            for atributo in subject.get_attributes_for_oid(NameOID.SERIAL_NUMBER):
                cnpj, cpf = _documento_do_texto(str(atributo.value))
                if cnpj or cpf:
                    break

        return cls(
            subject_name=subject.rfc4514_string(),
            issuer_name=certificate.issuer.rfc4514_string(),
            serial_number=str(certificate.serial_number),
            not_valid_before=certificate.not_valid_before_utc,
            not_valid_after=certificate.not_valid_after_utc,
            cn=cn or "Nome não encontrado",
            cnpj=cnpj,
            cpf=cpf,
            fingerprint=certificate.fingerprint(hashes.SHA256()).hex(),
        )


def _documento_do_texto(texto: str) -> Tuple[str, str]:
    """Procura CNPJ (14 dígitos) ou CPF (11 dígitos) em um texto. Retorna (cnpj, cpf)"""
    cnpj_match = re.search(r"(\d{2}\.?\d{3}\.?\d{3}/?\d{4}-?\d{2})", texto)
    if cnpj_match:
        return only_digits(cnpj_match.group(1)), ""
    cpf_match = re.search(r"(\d{3}\.?\d{3}\.?\d{3}-?\d{2})", texto)
    if cpf_match:
        return "", only_digits(cpf_match.group(1))
    return "", ""


@dataclass(frozen=True)
class TrustBundle:
    """
    Material de TLS pronto para uso: contexto SSL com o certificado do
    cliente e o pool de confiança (raízes do sistema + CAs do diretório).
    Construído uma vez e compartilhado somente leitura entre threads.
    """
    ssl_context: ssl.SSLContext
    client_info: CertificateInfo
    trusted: Tuple[x509.Certificate, ...] = ()
    avisos: Tuple[str, ...] = ()


def ler_certificados(conteudo: bytes) -> List[x509.Certificate]:
    """Lê um ou mais certificados em PEM; se não for PEM, tenta DER"""
    if b"-----BEGIN" in conteudo:
        return x509.load_pem_x509_certificates(conteudo)
    return [x509.load_der_x509_certificate(conteudo)]


class TrustStoreBuilder:
    """Monta o TrustBundle usado pelo cliente da SEFAZ"""

    def build(
        self,
        cert_dir: Union[str, Path],
        key_file: str,
        cert_file: str,
        password: Optional[str] = None,
    ) -> TrustBundle:
        """
        Args:
            cert_dir: Pasta com o par do cliente e as CAs da ICP-Brasil
            key_file: Nome do arquivo da chave privada (PEM)
            cert_file: Nome do certificado do cliente (PEM, ou .pfx/.p12)
            password: Senha da chave ou do bundle PKCS#12

        Raises:
            ClientCertError: par do cliente ausente ou inválido
            CertDirError: diretório não pôde ser listado
        """
        cert_dir = Path(cert_dir)
        context = self._criar_contexto()

        client_info = self._carregar_cliente(context, cert_dir, key_file, cert_file, password)
        if client_info.is_expired:
            logger.warning(f"Certificado do cliente expirado em {client_info.not_valid_after:%d/%m/%Y}: {client_info.friendly_name}")
        elif client_info.days_until_expiry <= DIAS_AVISO_EXPIRACAO:
            logger.warning(f"Certificado do cliente expira em {client_info.days_until_expiry} dia(s): {client_info.friendly_name}")
        else:
            logger.info(f"Certificado do cliente: {client_info.friendly_name}")

        self._carregar_raizes_do_sistema(context)
        trusted, avisos = self._carregar_cas_do_diretorio(context, cert_dir, key_file)

        return TrustBundle(
            ssl_context=context,
            client_info=client_info,
            trusted=tuple(trusted),
            avisos=tuple(avisos),
        )

    @staticmethod
    def _criar_contexto() -> ssl.SSLContext:
        # SEFAZ exige TLS 1.2 e alguns estados renegociam no meio da sessão
        context = create_urllib3_context(
            ssl_minimum_version=ssl.TLSVersion.TLSv1_2,
            ssl_maximum_version=ssl.TLSVersion.TLSv1_2,
        )
        context.options &= ~getattr(ssl, "OP_NO_RENEGOTIATION", 0)
        context.options |= getattr(ssl, "OP_LEGACY_SERVER_CONNECT", 0)
        context.verify_mode = ssl.CERT_REQUIRED
        context.check_hostname = True
        return context

    def _carregar_cliente(self, context, cert_dir: Path, key_file: str, cert_file: str,
                          password: Optional[str]) -> CertificateInfo:
        cert_path = cert_dir / cert_file
        if not cert_path.is_file():
            raise ClientCertError(f"Certificado do cliente não encontrado: {cert_path}")

        if cert_path.suffix.lower() in EXTENSOES_PKCS12:
            return self._carregar_pkcs12(context, cert_path, password)

        key_path = cert_dir / key_file
        if not key_path.is_file():
            raise ClientCertError(f"Chave privada não encontrada: {key_path}")

        try:
            certificados = ler_certificados(cert_path.read_bytes())
        except ValueError as e:
            raise ClientCertError(f"Certificado do cliente inválido ({cert_path.name}): {e}") from e
        if not certificados:
            raise ClientCertError(f"Nenhum certificado encontrado em {cert_path.name}")

        # chave decifrada aqui: sem senha, o OpenSSL pediria a frase no terminal
        try:
            private_key = serialization.load_pem_private_key(
                key_path.read_bytes(),
                password.encode("utf-8") if password else None,
            )
        except (TypeError, ValueError) as e:
            raise ClientCertError(f"Não foi possível abrir {key_path.name} (senha ausente/incorreta ou chave inválida): {e}") from e

        self._carregar_par(context, private_key, certificados, f"{cert_path.name}/{key_path.name}")
        return CertificateInfo.from_certificate(certificados[0])

    def _carregar_pkcs12(self, context, pfx_path: Path, password: Optional[str]) -> CertificateInfo:
        try:
            private_key, certificate, additional_certificates = pkcs12.load_key_and_certificates(
                pfx_path.read_bytes(),
                password.encode("utf-8") if password else None,
            )
        except ValueError as e:
            raise ClientCertError(f"Não foi possível abrir {pfx_path.name} (senha incorreta ou arquivo inválido): {e}") from e

        if private_key is None or certificate is None:
            raise ClientCertError(f"{pfx_path.name} não contém chave e certificado")

        self._carregar_par(context, private_key, [certificate, *(additional_certificates or [])], pfx_path.name)
        return CertificateInfo.from_certificate(certificate)

    @staticmethod
    def _carregar_par(context, private_key, certificados: List[x509.Certificate], origem: str) -> None:
        # ssl só carrega par de arquivos: grava PEM temporário e remove em seguida
        with tempfile.TemporaryDirectory(prefix="nfe_cert_") as tmp:
            tmp_cert = os.path.join(tmp, "cert.pem")
            tmp_key = os.path.join(tmp, "key.pem")
            with open(tmp_cert, "wb") as f:
                for certificado in certificados:
                    f.write(certificado.public_bytes(serialization.Encoding.PEM))
            with open(tmp_key, "wb") as f:
                f.write(private_key.private_bytes(
                    encoding=serialization.Encoding.PEM,
                    format=serialization.PrivateFormat.PKCS8,
                    encryption_algorithm=serialization.NoEncryption(),
                ))
            try:
                context.load_cert_chain(tmp_cert, tmp_key)
            except ssl.SSLError as e:
                raise ClientCertError(f"Par chave/certificado inválido em {origem}: {e}") from e

    @staticmethod
    def _carregar_raizes_do_sistema(context: ssl.SSLContext) -> None:
        try:
            context.load_default_certs(ssl.Purpose.SERVER_AUTH)
        except (ssl.SSLError, OSError) as e:
            logger.warning(f"Raízes do sistema indisponíveis, usando pool vazio: {e}")

    @staticmethod
    def _carregar_cas_do_diretorio(context: ssl.SSLContext, cert_dir: Path,
                                   key_file: str) -> Tuple[List[x509.Certificate], List[str]]:
        try:
            entradas = sorted(os.scandir(cert_dir), key=lambda entrada: entrada.name)
        except OSError as e:
            raise CertDirError(f"Falha ao ler o diretório {cert_dir}: {e}") from e

        trusted: List[x509.Certificate] = []
        avisos: List[str] = []
        for entrada in entradas:
            nome = entrada.name
            if entrada.is_dir() or nome == key_file:
                continue
            if not nome.lower().endswith(EXTENSOES_CERTIFICADO):
                continue

            try:
                certificados = ler_certificados(Path(entrada.path).read_bytes())
                for certificado in certificados:
                    context.load_verify_locations(
                        cadata=certificado.public_bytes(serialization.Encoding.PEM).decode("ascii")
                    )
            except (ValueError, OSError, ssl.SSLError) as e:
                aviso = f"Falha ao adicionar CA do arquivo {nome}: {e}"
                logger.warning(aviso)
                avisos.append(aviso)
                continue

            if not certificados:
                aviso = f"Nenhum certificado encontrado em {nome}"
                logger.warning(aviso)
                avisos.append(aviso)
                continue

            trusted.extend(certificados)
            logger.debug(f"CA carregada: {nome} ({len(certificados)} certificado(s))")

        logger.info(f"{len(trusted)} certificado(s) de confiança carregados de {cert_dir}")
        return trusted, avisos
