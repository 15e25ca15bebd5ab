"""Factories for tests and prototyping."""

from __future__ import annotations

from dataclasses import dataclass, field
from random import Random
from typing import Iterable

from faker import Faker

from ..domain.cards import MasterCard, Rarity
from ..storage.base import CardInstanceRecord


@dataclass(slots=True)
class MasterCardFactory:
    faker: Faker = field(default_factory=Faker)
    rng: Random = field(default_factory=Random)

    def build(self, rarity: Rarity | None = None) -> MasterCard:
        rarity = rarity or self.rng.choice(list(Rarity))
        card_id = f"card_{self.faker.unique.lexify(text='????')}"
        return MasterCard(
            card_id=card_id,
            name=self.faker.unique.word().title(),
            description=self.faker.sentence(),
            rarity=rarity,
            image_url=self.faker.image_url(),
            power_score=self.rng.randint(1, 100),
        )

    def batch(self, count: int, rarity: Rarity | None = None) -> Iterable[MasterCard]:
        for _ in range(count):
            yield self.build(rarity=rarity)


@dataclass(slots=True)
class InstanceFactory:
    faker: Faker = field(default_factory=Faker)
    rng: Random = field(default_factory=Random)

    def build(self, card: MasterCard, owner_id: str | None = None) -> CardInstanceRecord:
        level = self.rng.randint(1, 5)
        return CardInstanceRecord(
            instance_id=self.faker.unique.uuid4().replace("-", ""),
            card_id=card.card_id,
            owner_id=owner_id or self.faker.user_name(),
            level=level,
            power_score=card.power_score * level,
        )
