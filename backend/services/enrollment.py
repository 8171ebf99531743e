import logging
import secrets
import threading
from datetime import datetime
from typing import Callable

from backend.errors import DuplicateEnrollment
from backend.models import Identity, utcnow
from backend.validators import require_non_empty, require_template
from database.base import IdentityStore

logger = logging.getLogger(__name__)


def new_identity_id() -> str:
    return secrets.token_hex(8)


class EnrollmentService:
    def __init__(
        self,
        identities: IdentityStore,
        *,
        unique_names: bool = True,
        id_factory: Callable[[], str] = new_identity_id,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._identities = identities
        self._id_factory = id_factory
        self._clock = clock
        self.unique_names = unique_names
        # serializes the duplicate-name check with the insert
        self._lock = threading.Lock()

    def enroll(self, name, template) -> Identity:
        clean_name = require_non_empty(name, "name")
        features = require_template(template, "template")

        with self._lock:
            if self.unique_names and self._identities.find_by_name(clean_name):
                raise DuplicateEnrollment(f"An identity named {clean_name!r} is already enrolled.")

            identity = Identity(
                id=self._id_factory(),
                display_name=clean_name,
                template=features,
                enrolled_at=self._clock(),
            )
            self._identities.add(identity)

        logger.info("New identity enrolled: %s (%s)", identity.display_name, identity.id)
        return identity
