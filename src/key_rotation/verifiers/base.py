"""Verifier: proof that a credential works against a real target."""
from __future__ import annotations

from abc import ABC, abstractmethod

from key_rotation.models import Credential, Target


class Verifier(ABC):
    """Abstract base class for credential verifiers.

    Implementations must authenticate as the credential under test and
    nothing else, so an already-working administrative credential can never
    produce a false positive. Success means an exact, content-checked round
    trip, not merely an accepted connection.
    """

    @abstractmethod
    def verify(self, credential: Credential, target: Target, timeout: float) -> bool:
        """Return True if *credential* completes a round trip against *target*.

        Parameters
        ----------
        credential:
            The credential under test, including its secret material.
        target:
            What to verify against.
        timeout:
            Seconds allowed for the round trip.

        Raises
        ------
        VerificationError
            If verification could not be attempted at all.
        """
