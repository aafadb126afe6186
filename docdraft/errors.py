"""Exception types raised across the assistant."""


class AssistantError(Exception):
    """Base class for all docdraft errors."""


class ModelError(AssistantError):
    """A generative model call did not produce a usable response."""


class TransientModelOverload(ModelError):
    """The model is over capacity; the same call may succeed after a pause."""


class ModelUnavailable(ModelError):
    """Both the primary and the fallback model exhausted their attempts."""


class MalformedModelOutput(AssistantError):
    """The model response did not contain the expected JSON shape."""


class ExtractionFailed(AssistantError):
    """An answer could not be converted into a field value."""


class TemplateError(AssistantError):
    """Base class for template registry problems."""


class UnknownTemplate(TemplateError):
    """The template identifier is not registered."""

    def __init__(self, template_id: str) -> None:
        """Store the offending identifier."""
        super().__init__(f"Unknown template: {template_id}")
        self.template_id = template_id


class SchemaSynthesisFailed(TemplateError):
    """Questions for a template could not be generated."""


class IndexBuildFailure(AssistantError):
    """The knowledge index could not be built from the corpus."""


class RenderError(AssistantError):
    """A document template could not be rendered."""
