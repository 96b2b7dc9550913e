class ConfigurationError(RuntimeError):
    """A required external service has no credentials and nothing can stand in."""


class GenerationError(RuntimeError):
    """The generative service could not be reached or answered with an error."""


class WeeklyEventError(RuntimeError):
    pass
