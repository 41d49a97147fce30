# nfe_validator/utils.py
"""
Utilitários gerais do validador de NF-e
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

LOGGER_NAME = "nfe_validator"


def only_digits(text: Optional[str]) -> str:
    """
    Extrai apenas dígitos ASCII de uma string

    Args:
        text: String de entrada

    Returns:
        String contendo apenas dígitos 0-9
    """
    if not text:
        return ""
    return "".join(c for c in text if "0" <= c <= "9")


def choose_first_non_empty(*values: Optional[str]) -> str:
    """Retorna o primeiro valor que não seja vazio (após strip)"""
    for value in values:
        if value and value.strip():
            return value
    return ""


def local_name(tag) -> str:
    """Remove o namespace de uma tag lxml ('{ns}NFe' -> 'NFe')"""
    if not isinstance(tag, str):
        return ""
    return tag.split("}", 1)[1] if "}" in tag else tag


def setup_logger(level: Union[str, int] = "INFO", log_dir: Optional[Path] = None) -> logging.Logger:
    """
    Configura o logger do pacote com saída para console e, opcionalmente,
    arquivo diário na pasta de logs.

    O console usa stderr: o stdout fica reservado para o JSON de resultado.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level.upper() if isinstance(level, str) else level)

    if not logger.handlers:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
        logger.addHandler(console_handler)

        if log_dir is not None:
            log_dir = Path(log_dir)
            log_dir.mkdir(parents=True, exist_ok=True)
            log_filename = log_dir / f"nfe_validator_{datetime.now().strftime('%Y-%m-%d')}.log"
            file_handler = logging.FileHandler(log_filename, encoding="utf-8")
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
            logger.addHandler(file_handler)

    return logger
