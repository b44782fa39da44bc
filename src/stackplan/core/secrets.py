"""Generated credentials referenced by deferred attributes."""

import logging
import math
import random
import secrets
import string
from dataclasses import dataclass
from typing import Any

from stackplan.core.attributes import Deferred, Literal
from stackplan.core.errors import PolicyViolationError
from stackplan.core.graph import DependencyGraph
from stackplan.core.resources import ResourceKind, resource

logger = logging.getLogger(__name__)

PASSWORD_FIELD = "password"
USERNAME_FIELD = "username"


@dataclass(frozen=True)
class PasswordPolicy:
    """Character classes and strength required of generated passwords."""

    length: int = 30
    exclude_punctuation: bool = True
    exclude_whitespace: bool = True
    exclude_characters: str = "\"@/\\'"
    min_entropy_bits: float = 128.0

    def character_classes(self) -> list[str]:
        """Return the allowed characters grouped by class, empty classes dropped."""
        classes = [string.ascii_lowercase, string.ascii_uppercase, string.digits]
        if not self.exclude_punctuation:
            classes.append(string.punctuation)
        if not self.exclude_whitespace:
            classes.append(" ")
        excluded = set(self.exclude_characters)
        filtered = ["".join(c for c in group if c not in excluded) for group in classes]
        return [group for group in filtered if group]

    def alphabet(self) -> str:
        return "".join(self.character_classes())

    def entropy_bits(self) -> float:
        """Return the entropy of a password drawn uniformly from the alphabet."""
        size = len(self.alphabet())
        if size < 2:
            return 0.0
        return self.length * math.log2(size)

    def validate(self) -> None:
        """Check the policy can produce a strong enough password.

        Raises:
            PolicyViolationError: If the alphabet is empty, too short for every
                class, or the entropy is below the minimum.
        """
        classes = self.character_classes()
        if not classes:
            raise PolicyViolationError("Password policy excludes every character.")
        if self.length < len(classes):
            raise PolicyViolationError(
                f"Password length {self.length} cannot include "
                f"all {len(classes)} character classes."
            )
        bits = self.entropy_bits()
        if bits < self.min_entropy_bits:
            raise PolicyViolationError(
                f"Password policy yields {bits:.1f} bits of entropy, "
                f"{self.min_entropy_bits:.1f} required."
            )


def generate_password(policy: PasswordPolicy, rng: random.Random | None = None) -> str:
    """Generate a password with at least one character of every allowed class.

    Draws from the operating system CSPRNG unless ``rng`` is given.
    """
    policy.validate()
    rng = rng or secrets.SystemRandom()
    classes = policy.character_classes()
    alphabet = policy.alphabet()
    chars = [rng.choice(group) for group in classes]
    chars.extend(rng.choice(alphabet) for _ in range(policy.length - len(chars)))
    rng.shuffle(chars)
    return "".join(chars)


@dataclass(frozen=True)
class Credential:
    """A username known now and a password known after synthesis."""

    name: str
    username: Literal
    password: Deferred
    secret_arn: Deferred


class SecretStore:
    """Declares secret resources and hands out credentials that reference them.

    The provider materializes the secret value at synthesis time. A name is
    declared once; later ``generate`` calls for it return the same credential,
    so every lookup resolves to the one recorded password.
    """

    def __init__(self, graph: DependencyGraph, policy: PasswordPolicy | None = None) -> None:
        self.graph = graph
        self.policy = policy or PasswordPolicy()
        self._credentials: dict[str, Credential] = {}

    def generate(self, name: str, template_fields: dict[str, Any]) -> Credential:
        """Declare a secret holding ``template_fields`` plus a generated password.

        Args:
            name: Secret name, also used to derive the resource id.
            template_fields: Static JSON fields stored next to the password.
                ``username`` is required.

        Returns:
            The credential for the secret.

        Raises:
            PolicyViolationError: If the password policy is too weak.
        """
        existing = self._credentials.get(name)
        if existing is not None:
            return existing

        if USERNAME_FIELD not in template_fields:
            raise ValueError(f"Secret template for {name} must include '{USERNAME_FIELD}'.")
        self.policy.validate()

        secret = self.graph.add_resource(
            resource(
                self.resource_id(name),
                ResourceKind.SECRET,
                name=name,
                template=dict(template_fields),
                generate_field=PASSWORD_FIELD,
                password_length=self.policy.length,
                exclude_punctuation=self.policy.exclude_punctuation,
                exclude_whitespace=self.policy.exclude_whitespace,
                exclude_characters=self.policy.exclude_characters,
            )
        )
        credential = Credential(
            name=name,
            username=Literal(template_fields[USERNAME_FIELD]),
            password=secret.ref(PASSWORD_FIELD),
            secret_arn=secret.ref("arn"),
        )
        self._credentials[name] = credential
        logger.info("Declared secret %s", name)
        return credential

    @staticmethod
    def resource_id(name: str) -> str:
        return "secret-" + name.strip("/").replace("/", "-")


def policy_from_config(config: dict[str, Any]) -> PasswordPolicy:
    """Rebuild a password policy from a resolved secret config."""
    return PasswordPolicy(
        length=int(config.get("password_length", 30)),
        exclude_punctuation=bool(config.get("exclude_punctuation", True)),
        exclude_whitespace=bool(config.get("exclude_whitespace", True)),
        exclude_characters=str(config.get("exclude_characters", "")),
        min_entropy_bits=0.0,
    )
