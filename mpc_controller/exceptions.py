class ControllerError(Exception):
    """Base class for trajectory tracker errors."""


class QPInfeasibleOrTimeout(ControllerError):
    """The QP solver failed or did not finish within the cycle budget."""


class NoAcceptedGap(ControllerError):
    """Reactive fallback was needed but the gap follower accepted no gap."""
