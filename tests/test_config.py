from __future__ import annotations

import pytest
from pydantic import ValidationError

from cloud_assembly.config import PublishingConfig


def test_defaults() -> None:
    config = PublishingConfig.from_env({})

    assert config.registry is None
    assert config.partition == "aws"
    assert config.insecure_registry is False
    assert config.subprocess_output_destination == "stdio"


def test_reads_environment() -> None:
    env = {
        "CLOUD_ASSEMBLY_REGISTRY": "localhost:5000",
        "CLOUD_ASSEMBLY_ACCOUNT": "123456789012",
        "CLOUD_ASSEMBLY_REGION": "us-east-1",
        "CLOUD_ASSEMBLY_INSECURE_REGISTRY": "True",
        "CLOUD_ASSEMBLY_REGISTRY_TOKEN": "abc",
    }

    config = PublishingConfig.from_env(env)

    assert config.registry == "localhost:5000"
    assert config.account == "123456789012"
    assert config.region == "us-east-1"
    assert config.insecure_registry is True
    assert config.registry_token == "abc"


def test_explicit_values_win_over_environment() -> None:
    env = {"CLOUD_ASSEMBLY_REGION": "us-east-1", "CLOUD_ASSEMBLY_ACCOUNT": "111"}

    config = PublishingConfig.from_env(env, region="eu-central-1", account=None)

    assert config.region == "eu-central-1"
    assert config.account == "111"


def test_unknown_fields_are_rejected() -> None:
    with pytest.raises(ValidationError):
        PublishingConfig(registry="r", colour="blue")


def test_output_destination_is_constrained() -> None:
    with pytest.raises(ValidationError):
        PublishingConfig(subprocess_output_destination="file")
