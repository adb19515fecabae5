"""Domain errors raised by the simulation core."""


class GameError(ValueError):
    """Base class for domain failures returned to callers."""
    category = 'error'


class NotFoundError(GameError):
    """Unknown building, technology, expedition, upgrade or resource key."""
    category = 'not_found'


class PreconditionError(GameError):
    """Era requirement, prerequisite, max count or in-progress conflict."""
    category = 'precondition'


class InsufficientResourceError(GameError):
    """Cost, knowledge, soldier or population shortfall."""
    category = 'insufficient_resource'


class InvalidArgumentError(GameError):
    """Bad count, multiplier or action payload."""
    category = 'invalid_argument'


class PersistenceError(Exception):
    """Save or load failure. The original exception is chained."""
    category = 'persistence'


def format_amounts(amounts):
    """Format a {resource: amount} mapping as 'wood 30, stone 12'."""
    return ', '.join(f"{key} {amount:.0f}" for key, amount in sorted(amounts.items()))
