import datetime
import ipaddress
import logging
import ssl
from pathlib import Path
from typing import Optional, Tuple

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from .config import CONFIG_DIR

logger = logging.getLogger("devproxy.certs")

VALIDITY = datetime.timedelta(days=365)


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def _subject_name(host: str):
    try:
        return x509.IPAddress(ipaddress.ip_address(host))
    except ValueError:
        return x509.DNSName(host)


def _is_valid(cert_file: Path, host: str) -> bool:
    try:
        cert = x509.load_pem_x509_certificate(cert_file.read_bytes())
    except (OSError, ValueError) as e:
        logger.warning(f"Discarding unreadable certificate {cert_file}: {e}")
        return False
    if cert.not_valid_after_utc <= _now():
        logger.info(f"Certificate {cert_file} expired, regenerating")
        return False
    try:
        names = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    except x509.ExtensionNotFound:
        return False
    return _subject_name(host) in list(names)


def ensure_certificate(host: str, directory: Optional[Path] = None) -> Tuple[Path, Path]:
    """Returns the paths of a self-signed certificate and key for `host`,
    generating them when missing, expired or issued for another host."""
    directory = Path(directory or CONFIG_DIR)
    directory.mkdir(parents=True, exist_ok=True)
    cert_file = directory / f"{host}.crt"
    key_file = directory / f"{host}.key"
    if cert_file.exists() and key_file.exists() and _is_valid(cert_file, host):
        return cert_file, key_file

    logger.info(f"Generating self-signed certificate for {host} at {cert_file}")
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "devproxy"),
        x509.NameAttribute(NameOID.COMMON_NAME, host),
    ])
    cert = x509.CertificateBuilder().subject_name(
        name
    ).issuer_name(
        name
    ).public_key(
        key.public_key()
    ).serial_number(
        x509.random_serial_number()
    ).not_valid_before(
        _now() - datetime.timedelta(hours=1)
    ).not_valid_after(
        _now() + VALIDITY
    ).add_extension(
        x509.SubjectAlternativeName([_subject_name(host)]), critical=False
    ).sign(key, hashes.SHA256())

    cert_file.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
    key_file.write_bytes(key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ))
    key_file.chmod(0o600)
    return cert_file, key_file


def ssl_context(host: str, directory: Optional[Path] = None) -> ssl.SSLContext:
    cert_file, key_file = ensure_certificate(host, directory)
    ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    ctx.load_cert_chain(cert_file, key_file)
    return ctx
