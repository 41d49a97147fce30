import logging
import ssl
from pathlib import Path

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.serialization import pkcs12

from nfe_validator.certificate_manager import CertificateInfo, TrustStoreBuilder, ler_certificados
from nfe_validator.exceptions import CertDirError, ClientCertError


@pytest.fixture()
def builder() -> TrustStoreBuilder:
    return TrustStoreBuilder()


class TestBuild:
    def test_builds_bundle(self, builder: TrustStoreBuilder, cert_dir: Path) -> None:
        bundle = builder.build(cert_dir, "key.pem", "cert.pem")
        assert isinstance(bundle.ssl_context, ssl.SSLContext)
        # cert.pem (PEM) + ac_raiz.crt (DER); key.pem, .txt e a subpasta ficam de fora
        assert len(bundle.trusted) == 2
        assert len(bundle.avisos) == 1
        assert "corrompido.pem" in bundle.avisos[0]

    def test_context_pinned_to_tls12(self, builder: TrustStoreBuilder, cert_dir: Path) -> None:
        ctx = builder.build(cert_dir, "key.pem", "cert.pem").ssl_context
        assert ctx.minimum_version == ssl.TLSVersion.TLSv1_2
        assert ctx.maximum_version == ssl.TLSVersion.TLSv1_2
        assert ctx.verify_mode == ssl.CERT_REQUIRED

    def test_renegotiation_allowed(self, builder: TrustStoreBuilder, cert_dir: Path) -> None:
        ctx = builder.build(cert_dir, "key.pem", "cert.pem").ssl_context
        assert not ctx.options & getattr(ssl, "OP_NO_RENEGOTIATION", 0)

    def test_client_info(self, builder: TrustStoreBuilder, cert_dir: Path) -> None:
        info = builder.build(cert_dir, "key.pem", "cert.pem").client_info
        assert info.cn == "EMPRESA TESTE LTDA:32409620000175"
        assert info.cnpj == "32409620000175"
        assert info.cpf == ""
        assert info.is_valid
        assert not info.is_expired
        assert len(info.fingerprint) == 64

    def test_corrupted_file_logs_warning(
        self, builder: TrustStoreBuilder, cert_dir: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.WARNING, logger="nfe_validator.certificate_manager"):
            builder.build(cert_dir, "key.pem", "cert.pem")
        assert any("corrompido.pem" in r.getMessage() for r in caplog.records)

    def test_warns_when_close_to_expiry(
        self, builder: TrustStoreBuilder, tmp_path: Path, cert_factory, caplog: pytest.LogCaptureFixture
    ) -> None:
        key, cert = cert_factory("EMPRESA QUASE VENCIDA:11222333000181", dias=5)
        (tmp_path / "key.pem").write_bytes(key.private_bytes(
            serialization.Encoding.PEM, serialization.PrivateFormat.PKCS8, serialization.NoEncryption()
        ))
        (tmp_path / "cert.pem").write_bytes(cert.public_bytes(serialization.Encoding.PEM))
        with caplog.at_level(logging.WARNING, logger="nfe_validator.certificate_manager"):
            builder.build(tmp_path, "key.pem", "cert.pem")
        assert any("expira em" in r.getMessage() for r in caplog.records)


class TestClientPairErrors:
    def test_missing_key(self, builder: TrustStoreBuilder, cert_dir: Path) -> None:
        (cert_dir / "key.pem").unlink()
        with pytest.raises(ClientCertError, match="Chave privada"):
            builder.build(cert_dir, "key.pem", "cert.pem")

    def test_missing_cert(self, builder: TrustStoreBuilder, cert_dir: Path) -> None:
        with pytest.raises(ClientCertError, match="não encontrado"):
            builder.build(cert_dir, "key.pem", "outro.pem")

    def test_mismatched_pair(self, builder: TrustStoreBuilder, cert_dir: Path, cert_factory) -> None:
        outra_key, _ = cert_factory("OUTRA EMPRESA")
        (cert_dir / "key.pem").write_bytes(outra_key.private_bytes(
            serialization.Encoding.PEM, serialization.PrivateFormat.PKCS8, serialization.NoEncryption()
        ))
        with pytest.raises(ClientCertError):
            builder.build(cert_dir, "key.pem", "cert.pem")

    @pytest.fixture()
    def encrypted_key(self, cert_dir: Path, client_pair) -> Path:
        key, _ = client_pair
        path = cert_dir / "key.pem"
        path.write_bytes(key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.BestAvailableEncryption(b"segredo"),
        ))
        return path

    def test_encrypted_key_without_password(self, builder: TrustStoreBuilder, cert_dir: Path,
                                            encrypted_key: Path) -> None:
        with pytest.raises(ClientCertError, match="key.pem"):
            builder.build(cert_dir, "key.pem", "cert.pem")

    def test_encrypted_key_wrong_password(self, builder: TrustStoreBuilder, cert_dir: Path,
                                          encrypted_key: Path) -> None:
        with pytest.raises(ClientCertError):
            builder.build(cert_dir, "key.pem", "cert.pem", password="errada")

    def test_encrypted_key_with_password(self, builder: TrustStoreBuilder, cert_dir: Path,
                                         encrypted_key: Path) -> None:
        bundle = builder.build(cert_dir, "key.pem", "cert.pem", password="segredo")
        assert bundle.client_info.cnpj == "32409620000175"

    def test_invalid_cert_content(self, builder: TrustStoreBuilder, cert_dir: Path) -> None:
        (cert_dir / "cert.pem").write_bytes(b"isto nao e um certificado")
        with pytest.raises(ClientCertError):
            builder.build(cert_dir, "key.pem", "cert.pem")


class TestPkcs12:
    @pytest.fixture()
    def pfx_dir(self, tmp_path: Path, client_pair) -> Path:
        key, cert = client_pair
        pasta = tmp_path / "a1"
        pasta.mkdir()
        (pasta / "certificado.pfx").write_bytes(pkcs12.serialize_key_and_certificates(
            b"empresa", key, cert, None, serialization.BestAvailableEncryption(b"senha123")
        ))
        return pasta

    def test_loads_bundle(self, builder: TrustStoreBuilder, pfx_dir: Path) -> None:
        bundle = builder.build(pfx_dir, "", "certificado.pfx", password="senha123")
        assert bundle.client_info.cnpj == "32409620000175"
        assert bundle.trusted == ()

    def test_wrong_password(self, builder: TrustStoreBuilder, pfx_dir: Path) -> None:
        with pytest.raises(ClientCertError, match="senha incorreta"):
            builder.build(pfx_dir, "", "certificado.pfx", password="errada")


class TestCertDir:
    def test_unlistable_directory(self, tmp_path: Path) -> None:
        ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        with pytest.raises(CertDirError):
            TrustStoreBuilder._carregar_cas_do_diretorio(ctx, tmp_path / "nao_existe", "key.pem")


class TestCertificateInfo:
    def test_cpf_in_common_name(self, cert_factory) -> None:
        _, cert = cert_factory("FULANO DE TAL:12345678909")
        info = CertificateInfo.from_certificate(cert)
        assert info.cpf == "12345678909"
        assert info.cnpj == ""
        assert info.friendly_name == "FULANO DE TAL:12345678909 (CPF: 12345678909)"

    def test_without_document(self, cert_factory) -> None:
        _, cert = cert_factory("SERVIDOR")
        info = CertificateInfo.from_certificate(cert)
        assert info.friendly_name == "SERVIDOR"

    def test_reads_pem_bundle(self, cert_factory) -> None:
        _, a = cert_factory("A")
        _, b = cert_factory("B")
        conteudo = a.public_bytes(serialization.Encoding.PEM) + b.public_bytes(serialization.Encoding.PEM)
        assert len(ler_certificados(conteudo)) == 2

    def test_reads_der(self, cert_factory) -> None:
        _, a = cert_factory("A")
        assert len(ler_certificados(a.public_bytes(serialization.Encoding.DER))) == 1
