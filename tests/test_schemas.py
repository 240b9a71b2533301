import importlib
import warnings

import pytest
from pydantic import ValidationError

from api.auth import schemas


def test_schemas_load_without_deprecation_warnings():
    with warnings.catch_warnings():
        warnings.simplefilter("error", DeprecationWarning)
        importlib.reload(schemas)


def test_examples_end_up_in_the_json_schema():
    assert schemas.RegisterRequest.model_json_schema()["example"]["username"] == "hannibal"
    assert "challenge_token" in schemas.TwoFactorLoginRequest.model_json_schema()["example"]


def test_second_step_takes_a_challenge_instead_of_a_username():
    body = schemas.TwoFactorLoginRequest(challenge_token="abc", code="123456")
    assert body.challenge_token == "abc"
    assert schemas.TwoFactorLoginRequest(code="123456").challenge_token is None
    with pytest.raises(ValidationError):
        schemas.TwoFactorLoginRequest(challenge_token="abc", code="12345")
