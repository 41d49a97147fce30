# nfe_validator/exceptions.py
"""
Hierarquia de erros do validador de NF-e
"""

from typing import Optional


class NFeValidatorError(Exception):
    """Erro base do validador"""


class SchemaViolation(NFeValidatorError):
    """XML não passou na validação XSD"""

    def __init__(self, message: str, line: Optional[int] = None):
        self.line = line
        self.message = message
        if line is not None:
            super().__init__(f"falha na validação XSD (linha {line}): {message}")
        else:
            super().__init__(message)


class ParseError(NFeValidatorError):
    """Falha ao estruturar o XML da NF-e"""


class MalformedDocument(ParseError):
    """XML mal formado ou fora dos formatos nfeProc / NFe"""


class MissingIdentifier(ParseError):
    """infNFe encontrado, mas sem atributo Id"""


class AccessKeyError(NFeValidatorError):
    """Chave de acesso inválida"""


class AccessKeyFormatError(AccessKeyError):
    """Chave não tem exatamente 44 dígitos"""


class CheckDigitMismatch(AccessKeyError):
    """Dígito verificador (módulo 11) não confere"""

    def __init__(self, esperado: int, informado: int):
        self.esperado = esperado
        self.informado = informado
        super().__init__(
            f"dígito verificador inválido (esperado {esperado}, informado {informado})"
        )


class TrustError(NFeValidatorError):
    """Falha ao montar a cadeia de confiança mTLS"""


class ClientCertError(TrustError):
    """Certificado/chave do cliente ausente ou inválido"""


class CertDirError(TrustError):
    """Diretório de certificados não pôde ser listado"""


class NetworkError(NFeValidatorError):
    """Falha de comunicação com o webservice da SEFAZ"""


class ProtocolError(NFeValidatorError):
    """Resposta da SEFAZ não pôde ser interpretada (modo estrito)"""


class SchemaDownloadError(NFeValidatorError):
    """Falha ao baixar ou extrair o pacote de schemas XSD"""
