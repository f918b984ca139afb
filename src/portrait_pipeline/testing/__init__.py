"""Testing utilities and fakes for the portrait pipeline."""

from .fakes import (
    FakeHTTPClient,
    FakeLogger,
    FakeRoute,
    FakeSleeper,
    RecordedRequest,
    create_test_config,
    create_test_image,
    create_test_photo,
    create_test_templates,
    setup_test_service_environment,
    setup_training_routes,
    style_matcher,
)

__all__ = [
    "FakeHTTPClient",
    "FakeLogger",
    "FakeRoute",
    "FakeSleeper",
    "RecordedRequest",
    "create_test_config",
    "create_test_image",
    "create_test_photo",
    "create_test_templates",
    "setup_test_service_environment",
    "setup_training_routes",
    "style_matcher",
]
