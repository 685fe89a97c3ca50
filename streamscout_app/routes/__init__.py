"""HTTP blueprints for the StreamScout API."""

from flask import current_app

from ..services import PipelineServices

EXTENSION_KEY = 'streamscout'


def get_services() -> PipelineServices:
    """The service graph attached to the running app by create_app()."""
    return current_app.extensions[EXTENSION_KEY]
