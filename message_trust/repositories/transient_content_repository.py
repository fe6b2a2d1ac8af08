"""
Encrypted storage of raw upload bytes for the lifetime of a job
"""

import base64
import functools

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from message_trust.database import db
from message_trust.database.models import TransientContent
from message_trust.repositories.base_repository import ModelRepository
from message_trust.repositories.upload_job_repository import parse_job_id
from message_trust.services.exceptions import NotFoundError


KDF_SALT = b"message-trust/transient-content/v1"
KDF_ITERATIONS = 200_000


@functools.lru_cache(maxsize=8)
def cipher_for(secret: str) -> Fernet:
    """Derive the Fernet cipher for a configured secret"""
    if not secret:
        raise RuntimeError("CONTENT_ENCRYPTION_KEY is required to store upload content")
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=KDF_SALT,
        iterations=KDF_ITERATIONS,
    )
    key = base64.urlsafe_b64encode(kdf.derive(secret.encode('utf-8')))
    return Fernet(key)


class TransientContentRepository(ModelRepository[TransientContent]):
    """Store, load and purge the encrypted upload belonging to a job"""

    def __init__(self, encryption_key: str, db_session=None):
        super().__init__(TransientContent, db_session)
        self.cipher = cipher_for(encryption_key)

    def store(self, job_id, data: bytes) -> TransientContent:
        return self.create(
            job_id=parse_job_id(job_id),
            encrypted_data=self.cipher.encrypt(data),
            byte_size=len(data),
        )

    def _find(self, job_id) -> TransientContent | None:
        parsed = parse_job_id(job_id)
        if parsed is None:
            return None

        def _query():
            return self.db_session.execute(
                db.select(TransientContent).where(TransientContent.job_id == parsed)
            ).scalars().first()

        return self.safe_query(_query, f"find content for job {parsed}")

    def load(self, job_id) -> bytes:
        """
        Decrypt the stored upload

        Raises:
            NotFoundError: When the content was never stored or is already purged
        """
        content = self._find(job_id)
        if content is None:
            raise NotFoundError(f"No stored content for upload {job_id}")
        try:
            return self.cipher.decrypt(content.encrypted_data)
        except InvalidToken as e:
            raise NotFoundError(f"Stored content for upload {job_id} cannot be decrypted") from e

    def exists(self, job_id) -> bool:
        return self._find(job_id) is not None

    def purge(self, job_id) -> bool:
        """Delete the stored upload; returns False when nothing was stored"""
        content = self._find(job_id)
        if content is None:
            return False
        self.delete(content)
        self.logger.info(f"Purged transient content for upload {job_id}")
        return True
