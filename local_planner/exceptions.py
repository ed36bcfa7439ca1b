class PlannerError(Exception):
    """Base class for local planner errors."""


class TransformUnavailable(PlannerError):
    """A coordinate frame transform could not be looked up."""


class EmptyOrMalformedMap(PlannerError):
    """The occupancy grid is empty or its data does not match its geometry."""


class MalformedReferenceData(PlannerError):
    """A reference path could not be loaded or has invalid content."""


class MalformedScan(PlannerError):
    """A laser scan has no beams or a non-positive angle increment."""
