"""
Encrypted storage of Planka access tokens.

One credential per user, kept in the generic `key` table under the name
"planka_token". The stored value is the Fernet-encrypted JSON envelope
{"accessToken", "userData", "connectedAt"}; every write replaces the whole
envelope.
"""
import uuid
from typing import Any, Dict, Optional, Union

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from plankalink.core.encryption import decrypt_token, encrypt_token, is_encrypted
from plankalink.core.exceptions import InfrastructureError
from plankalink.core.logging_config import log_error, log_info, log_warning
from plankalink.core.time_utils import ensure_utc, utc_now
from plankalink.integrations.schemas import PlankaCredential
from plankalink.models.key import Key

PLANKA_KEY_NAME = "planka_token"


def _as_uuid(user_id: Union[str, uuid.UUID]) -> Optional[uuid.UUID]:
    if isinstance(user_id, uuid.UUID):
        return user_id
    try:
        return uuid.UUID(str(user_id))
    except ValueError:
        return None


class PlankaTokenService:
    """Credential store for Planka tokens."""

    def __init__(self, session: Session):
        self.session = session

    def _get_key(self, user_uuid: uuid.UUID) -> Optional[Key]:
        statement = select(Key).where(
            Key.user_id == user_uuid,
            Key.name == PLANKA_KEY_NAME,
        )
        try:
            return self.session.exec(statement).first()
        except SQLAlchemyError as exc:
            log_error(exc, user_id=str(user_uuid), action="planka_token_lookup")
            raise InfrastructureError("Credential store unavailable") from exc

    def store(
        self,
        user_id: Union[str, uuid.UUID],
        access_token: str,
        user_data: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Encrypt and upsert the Planka credential for a user.

        Never fails on an existing record; the previous envelope is replaced in full.

        Raises:
            ValueError: If the user id is malformed or the token is empty
            InfrastructureError: If encryption or the database write fails
        """
        user_uuid = _as_uuid(user_id)
        if user_uuid is None:
            raise ValueError(f"Invalid user id: {user_id}")
        if not access_token or not access_token.strip():
            raise ValueError("Cannot store an empty Planka access token")

        envelope = PlankaCredential(
            access_token=access_token,
            user_data=user_data,
            connected_at=utc_now(),
        )
        try:
            encrypted_value = encrypt_token(envelope.model_dump_json(by_alias=True))
        except ValueError as exc:
            raise InfrastructureError("Failed to encrypt Planka credential") from exc

        try:
            self._upsert(user_uuid, encrypted_value)
        except IntegrityError:
            # A concurrent request inserted the row first; overwrite it.
            self.session.rollback()
            try:
                self._upsert(user_uuid, encrypted_value)
            except SQLAlchemyError as exc:
                self.session.rollback()
                log_error(exc, user_id=str(user_uuid), action="planka_token_store")
                raise InfrastructureError("Credential store unavailable") from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            log_error(exc, user_id=str(user_uuid), action="planka_token_store")
            raise InfrastructureError("Credential store unavailable") from exc

        log_info("Stored Planka token", user_id=str(user_uuid))

    def _upsert(self, user_uuid: uuid.UUID, encrypted_value: str) -> None:
        now = utc_now()
        key = self._get_key(user_uuid)
        if key is None:
            key = Key(
                user_id=user_uuid,
                name=PLANKA_KEY_NAME,
                value=encrypted_value,
                updated_at=now,
            )
        else:
            key.value = encrypted_value
            key.updated_at = now
        self.session.add(key)
        self.session.commit()

    def fetch(self, user_id: Union[str, uuid.UUID]) -> Optional[PlankaCredential]:
        """
        Read and decrypt the Planka credential for a user.

        Returns None when there is no record, and also when the record cannot be
        decrypted or parsed (logged), so a corrupt row reads as "not linked".
        """
        user_uuid = _as_uuid(user_id)
        if user_uuid is None:
            return None

        key = self._get_key(user_uuid)
        if key is None:
            return None

        if not is_encrypted(key.value):
            log_warning("Stored Planka credential is not encrypted; ignoring it", user_id=str(user_uuid))
            return None

        try:
            credential = PlankaCredential.model_validate_json(decrypt_token(key.value))
        except ValueError as exc:
            log_warning(
                "Stored Planka credential is unreadable; treating as not linked",
                user_id=str(user_uuid),
                error=type(exc).__name__,
            )
            return None

        credential.updated_at = ensure_utc(key.updated_at) if key.updated_at else None
        return credential

    def remove(self, user_id: Union[str, uuid.UUID]) -> bool:
        """Delete the Planka credential. Returns whether a record existed."""
        user_uuid = _as_uuid(user_id)
        if user_uuid is None:
            return False

        key = self._get_key(user_uuid)
        if key is None:
            return False

        try:
            self.session.delete(key)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            log_error(exc, user_id=str(user_uuid), action="planka_token_remove")
            raise InfrastructureError("Credential store unavailable") from exc

        log_info("Removed Planka token", user_id=str(user_uuid))
        return True

    def is_linked(self, user_id: Union[str, uuid.UUID]) -> bool:
        credential = self.fetch(user_id)
        return credential is not None and bool(credential.access_token)
