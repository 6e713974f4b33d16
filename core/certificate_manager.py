# core/certificate_manager.py
import ipaddress
import logging
import ssl
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

logger = logging.getLogger(__name__)


class CertificateManager:
    """TLS сертификат для HTTPS режима сервера"""

    def __init__(self, certs_dir: Optional[Path] = None, cert_path: Optional[Path] = None,
                 key_path: Optional[Path] = None, hostnames: Iterable[str] = ('localhost', '127.0.0.1')):
        if certs_dir is None:
            from core.config_manager import get_app_data_dir
            certs_dir = get_app_data_dir() / "certificates"

        self.certs_dir = Path(certs_dir)
        self.cert_path = Path(cert_path) if cert_path else self.certs_dir / "taskboard.crt"
        self.key_path = Path(key_path) if key_path else self.certs_dir / "taskboard.key"
        self.hostnames = list(hostnames)

    def _subject_alt_names(self) -> x509.SubjectAlternativeName:
        names = []
        for host in self.hostnames:
            try:
                names.append(x509.IPAddress(ipaddress.ip_address(host)))
            except ValueError:
                names.append(x509.DNSName(host))
        return x509.SubjectAlternativeName(names)

    def generate_self_signed_certificate(self, days: int = 365) -> bool:
        """Генерирует самоподписанный сертификат для указанных хостов"""
        try:
            self.certs_dir.mkdir(parents=True, exist_ok=True)

            private_key = rsa.generate_private_key(
                public_exponent=65537,
                key_size=2048,
            )

            subject = issuer = x509.Name([
                x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Taskboard"),
                x509.NameAttribute(NameOID.COMMON_NAME, self.hostnames[0] if self.hostnames else "localhost"),
            ])

            now = datetime.now(timezone.utc)
            cert = x509.CertificateBuilder().subject_name(
                subject
            ).issuer_name(
                issuer
            ).public_key(
                private_key.public_key()
            ).serial_number(
                x509.random_serial_number()
            ).not_valid_before(
                now
            ).not_valid_after(
                now + timedelta(days=days)
            ).add_extension(
                self._subject_alt_names(), critical=False
            ).sign(private_key, hashes.SHA256())

            with open(self.key_path, "wb") as key_file:
                key_file.write(private_key.private_bytes(
                    encoding=serialization.Encoding.PEM,
                    format=serialization.PrivateFormat.TraditionalOpenSSL,
                    encryption_algorithm=serialization.NoEncryption(),
                ))

            with open(self.cert_path, "wb") as cert_file:
                cert_file.write(cert.public_bytes(
                    encoding=serialization.Encoding.PEM
                ))

            logger.info(f"✅ Самоподписанный сертификат создан: {self.cert_path}")
            return True

        except (OSError, ValueError) as e:
            logger.error(f"❌ Ошибка генерации сертификата: {e}")
            return False

    def check_certificates_exist(self) -> bool:
        """Проверяет существование сертификатов"""
        return self.cert_path.exists() and self.key_path.exists()

    def ensure_certificates_exist(self) -> bool:
        """Убеждается, что сертификаты существуют, и создает их при необходимости"""
        if not self.check_certificates_exist():
            logger.warning("Сертификаты не найдены, генерируем новые...")
            return self.generate_self_signed_certificate()
        return True

    def create_ssl_context(self) -> ssl.SSLContext:
        """SSL контекст сервера из файлов сертификата и ключа"""
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        context.load_cert_chain(certfile=str(self.cert_path), keyfile=str(self.key_path))
        return context

    def get_certificate_days_remaining(self) -> int:
        """Возвращает количество дней до истечения срока действия сертификата"""
        if not self.cert_path.exists():
            return -1

        try:
            cert = x509.load_pem_x509_certificate(self.cert_path.read_bytes())
            days_remaining = (cert.not_valid_after_utc - datetime.now(timezone.utc)).days
            return max(0, days_remaining)
        except (OSError, ValueError) as e:
            logger.error(f"Ошибка проверки срока действия сертификата: {e}")
            return -1
