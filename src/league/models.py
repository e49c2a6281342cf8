"""
Data models for the doubles league: players, matches, bracket slots and standings rows.
"""
from enum import Enum
from typing import List, Dict, Optional, Tuple


class MatchStatus(str, Enum):
    SCHEDULED = 'scheduled'
    CONFIRMED = 'confirmed'
    COMPLETED = 'completed'
    TO_RECOVER = 'to-recover'
    PLACEHOLDER = 'placeholder'


class MatchPhase(str, Enum):
    ROUND_ROBIN = 'round-robin'
    KNOCKOUT = 'knockout'


class RejectionReason(str, Enum):
    NOT_ENOUGH_PLAYERS = 'not-enough-players'
    INCOMPLETE_PREVIOUS_ROUND = 'incomplete-previous-round'
    ROUND_ROBIN_COMPLETE = 'round-robin-complete'
    ALREADY_FULLY_COMPLETED = 'already-fully-completed'
    ALREADY_FROZEN = 'already-frozen'
    NOT_FOUND = 'not-found'


# Score fields cleared on freeze and restored on recovery
SCORE_FIELDS = ('sets_a', 'sets_b', 'games_a', 'games_b', 'sets', 'completed_at')


class Player:
    def __init__(self, id, name=None):
        self.id = id
        self.name = name if name else id

    def to_dict(self):
        return {'id': self.id, 'name': self.name}

    @classmethod
    def from_dict(cls, data):
        return cls(id=str(data['id']), name=data.get('name'))

    def __eq__(self, other):
        return isinstance(other, Player) and self.id == other.id and self.name == other.name

    def __hash__(self):
        return hash(self.id)

    def __repr__(self):
        return f"Player(id={self.id}, name={self.name})"


class MatchResult:
    """A doubles match of the league log.

    ``team_a`` and ``team_b`` hold two player ids each. ``sets_a``/``sets_b``
    are the sets won by each side and ``games_a``/``games_b`` the aggregate
    games across sets; all four stay ``None`` until a result is recorded.
    """

    def __init__(self, id, team_a, team_b, matchday=None, phase=MatchPhase.ROUND_ROBIN,
                 status=MatchStatus.SCHEDULED, sets_a=None, sets_b=None, games_a=None,
                 games_b=None, sets=None, place=None, date=None, time=None,
                 created_at=None, completed_at=None, frozen_at=None,
                 original_matchday=None, original_data=None):
        self.id = id
        self.team_a = tuple(team_a) if team_a else None
        self.team_b = tuple(team_b) if team_b else None
        self.matchday = matchday
        self.phase = MatchPhase(phase)
        self.status = MatchStatus(status)
        self.sets_a = sets_a
        self.sets_b = sets_b
        self.games_a = games_a
        self.games_b = games_b
        self.sets = sets
        self.place = place
        self.date = date
        self.time = time
        self.created_at = created_at
        self.completed_at = completed_at
        self.frozen_at = frozen_at
        self.original_matchday = original_matchday
        self.original_data = original_data

    @property
    def players(self) -> List[str]:
        return list(self.team_a or ()) + list(self.team_b or ())

    @property
    def has_score(self) -> bool:
        return self.sets_a is not None and self.sets_b is not None

    @property
    def is_completed(self) -> bool:
        return self.status == MatchStatus.COMPLETED and self.has_score

    @property
    def winning_team(self) -> Optional[Tuple[str, str]]:
        if not self.has_score or self.sets_a == self.sets_b:
            return None
        return self.team_a if self.sets_a > self.sets_b else self.team_b

    @property
    def losing_team(self) -> Optional[Tuple[str, str]]:
        winner = self.winning_team
        if winner is None:
            return None
        return self.team_b if winner == self.team_a else self.team_a

    def sort_key(self):
        return (self.date or '', self.id)

    def score_snapshot(self) -> Dict:
        snapshot = {'status': self.status.value}
        for field in SCORE_FIELDS:
            value = getattr(self, field)
            if value is not None:
                snapshot[field] = value
        return snapshot

    def clear_score(self):
        for field in SCORE_FIELDS:
            setattr(self, field, None)

    def to_dict(self):
        data = {
            'id': self.id,
            'team_a': list(self.team_a) if self.team_a else None,
            'team_b': list(self.team_b) if self.team_b else None,
            'matchday': self.matchday,
            'phase': self.phase.value,
            'status': self.status.value,
        }
        optional = {
            'sets_a': self.sets_a,
            'sets_b': self.sets_b,
            'games_a': self.games_a,
            'games_b': self.games_b,
            'sets': [list(s) for s in self.sets] if self.sets else None,
            'place': self.place,
            'date': self.date,
            'time': self.time,
            'created_at': self.created_at,
            'completed_at': self.completed_at,
            'frozen_at': self.frozen_at,
            'original_matchday': self.original_matchday,
            'original_data': self.original_data,
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        return data

    @classmethod
    def from_dict(cls, data):
        if data.get('phase') == MatchPhase.KNOCKOUT.value:
            return BracketMatch.from_dict(data)
        return cls(**_match_kwargs(data))

    def __repr__(self):
        return (f"MatchResult(id={self.id}, matchday={self.matchday}, team_a={self.team_a}, "
                f"team_b={self.team_b}, status={self.status.value}, "
                f"sets={self.sets_a}-{self.sets_b})")


class BracketMatch(MatchResult):
    """A knockout slot. Unresolved sides hold ``None`` until a winner advances into them."""

    def __init__(self, id, round, match_number, team_a=None, team_b=None,
                 winner_advances_to=None, round_name=None, **kwargs):
        kwargs.setdefault('phase', MatchPhase.KNOCKOUT)
        if team_a and team_b:
            kwargs.setdefault('status', MatchStatus.SCHEDULED)
        else:
            kwargs.setdefault('status', MatchStatus.PLACEHOLDER)
        super().__init__(id, team_a, team_b, **kwargs)
        self.round = round
        self.match_number = match_number
        self.winner_advances_to = winner_advances_to
        self.round_name = round_name

    @property
    def awaiting_teams(self) -> bool:
        """True while either side is unresolved. A slot with one pair written in is
        already ``scheduled`` but still awaits the other feeder."""
        return self.team_a is None or self.team_b is None

    @property
    def is_final(self) -> bool:
        return self.winner_advances_to is None

    def to_dict(self):
        data = super().to_dict()
        data.update({
            'round': self.round,
            'match_number': self.match_number,
            'winner_advances_to': self.winner_advances_to,
        })
        if self.round_name:
            data['round_name'] = self.round_name
        return data

    @classmethod
    def from_dict(cls, data):
        kwargs = _match_kwargs(data)
        return cls(
            round=data['round'],
            match_number=data['match_number'],
            winner_advances_to=data.get('winner_advances_to'),
            round_name=data.get('round_name'),
            **kwargs
        )

    def __repr__(self):
        return (f"BracketMatch(id={self.id}, round={self.round}, team_a={self.team_a}, "
                f"team_b={self.team_b}, status={self.status.value}, "
                f"winner_advances_to={self.winner_advances_to})")


def _match_kwargs(data: Dict) -> Dict:
    keys = ('id', 'team_a', 'team_b', 'matchday', 'phase', 'status', 'sets_a', 'sets_b',
            'games_a', 'games_b', 'sets', 'place', 'date', 'time', 'created_at',
            'completed_at', 'frozen_at', 'original_matchday', 'original_data')
    kwargs = {k: data[k] for k in keys if k in data and data[k] is not None}
    kwargs['id'] = str(data['id'])
    kwargs.setdefault('team_a', None)
    kwargs.setdefault('team_b', None)
    return kwargs


class StandingRow:
    def __init__(self, player_id, name=None):
        self.player_id = player_id
        self.name = name if name else player_id
        self.points = 0
        self.sets_won = 0
        self.sets_lost = 0
        self.games_won = 0
        self.games_lost = 0
        self.played = 0

    @property
    def set_diff(self) -> int:
        return self.sets_won - self.sets_lost

    @property
    def game_diff(self) -> int:
        return self.games_won - self.games_lost

    def sort_key(self):
        return (-self.points, -self.set_diff, -self.game_diff, self.played, self.name)

    def to_dict(self):
        return {
            'player_id': self.player_id,
            'name': self.name,
            'points': self.points,
            'sets_won': self.sets_won,
            'sets_lost': self.sets_lost,
            'set_diff': self.set_diff,
            'games_won': self.games_won,
            'games_lost': self.games_lost,
            'game_diff': self.game_diff,
            'played': self.played,
        }

    @classmethod
    def from_dict(cls, data):
        row = cls(data['player_id'], data.get('name'))
        row.points = data.get('points', 0)
        row.sets_won = data.get('sets_won', 0)
        row.sets_lost = data.get('sets_lost', 0)
        row.games_won = data.get('games_won', 0)
        row.games_lost = data.get('games_lost', 0)
        row.played = data.get('played', 0)
        return row

    def __eq__(self, other):
        return isinstance(other, StandingRow) and self.to_dict() == other.to_dict()

    def __repr__(self):
        return (f"StandingRow(player_id={self.player_id}, points={self.points}, "
                f"set_diff={self.set_diff}, game_diff={self.game_diff}, played={self.played})")


class Outcome:
    """Result of a guarded operation: either the records it produced or a typed rejection."""

    def __init__(self, records=None, reason=None, message=None):
        self.records = records if records is not None else []
        self.reason = RejectionReason(reason) if reason else None
        self.message = message

    @property
    def ok(self) -> bool:
        return self.reason is None

    @classmethod
    def rejected(cls, reason, message=None):
        return cls(reason=reason, message=message or RejectionReason(reason).value)

    def __repr__(self):
        if self.ok:
            return f"Outcome(records={len(self.records)})"
        return f"Outcome(rejected={self.reason.value}, message={self.message})"
