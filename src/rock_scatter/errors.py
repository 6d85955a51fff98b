class RockScatterError(Exception):
    pass


class InvalidMeasurement(RockScatterError, ValueError):
    def __init__(self, message: str, sample_id=None):
        super().__init__(message)
        self.sample_id = sample_id


class InvalidAxis(RockScatterError, ValueError):
    def __init__(self, axis: str, variable):
        self.axis = axis
        self.variable = variable
        super().__init__(
            f"Invalid axis selection, the {axis!r} axis can not be set to {variable!r}"
        )


class DatasetUnavailable(RockScatterError, RuntimeError):
    pass
