class ExperimentError(Exception):
    """Base class for experiment configuration and lifecycle errors."""


class AllocationError(ExperimentError):
    """Variant traffic split or control flag is invalid."""


class ExperimentNotFoundError(ExperimentError):
    def __init__(self, experiment_id: int):
        self.experiment_id = experiment_id
        super().__init__(f"Experiment ID {experiment_id} not found.")


class InvalidStatusTransitionError(ExperimentError):
    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move experiment from '{current}' to '{requested}'.")
