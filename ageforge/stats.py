"""Run statistics."""
import time
from dataclasses import dataclass, field


@dataclass
class GameStats:
    total_built: int = 0
    total_recruited: int = 0
    total_gathered: dict = field(default_factory=dict)
    ages_reached: dict = field(default_factory=dict)
    expeditions_won: int = 0
    expeditions_lost: int = 0
    events_seen: int = 0
    game_start: float = field(default_factory=time.time)

    def record_build(self, count=1):
        self.total_built += count

    def record_recruit(self, count):
        self.total_recruited += count

    def record_gather(self, resource, amount):
        if amount > 0:
            self.total_gathered[resource] = self.total_gathered.get(resource, 0.0) + amount

    def record_age(self, age, tick):
        self.ages_reached.setdefault(age, tick)

    def to_dict(self):
        return {
            'total_built': self.total_built,
            'total_recruited': self.total_recruited,
            'total_gathered': dict(self.total_gathered),
            'ages_reached': dict(self.ages_reached),
            'expeditions_won': self.expeditions_won,
            'expeditions_lost': self.expeditions_lost,
            'events_seen': self.events_seen,
            'game_start': self.game_start,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            total_built=int(data.get('total_built', 0)),
            total_recruited=int(data.get('total_recruited', 0)),
            total_gathered={k: float(v) for k, v in data.get('total_gathered', {}).items()},
            ages_reached={k: int(v) for k, v in data.get('ages_reached', {}).items()},
            expeditions_won=int(data.get('expeditions_won', 0)),
            expeditions_lost=int(data.get('expeditions_lost', 0)),
            events_seen=int(data.get('events_seen', 0)),
            game_start=float(data.get('game_start', time.time())),
        )
