"""Exceptions raised by the league core."""


class LeagueError(Exception):
    """Base exception for all league errors."""

    pass


class InvalidScoreError(LeagueError):
    """Raised when a submitted score is not a valid match outcome."""

    pass


class MatchNotFoundError(LeagueError):
    """Raised when a match id does not exist in the log."""

    pass


class InvalidTransitionError(LeagueError):
    """Raised when a match cannot move to the requested status."""

    pass


class PhaseError(LeagueError):
    """Raised when the tournament is in the wrong phase for the requested operation."""

    pass


class NotEnoughPlayersError(LeagueError):
    """Raised when fewer than four players are available, which makes scheduling impossible."""

    pass


class DuplicatePlayerError(LeagueError):
    """Raised when registering a player whose id is already on the roster."""

    pass
