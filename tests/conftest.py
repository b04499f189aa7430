"""Pytest fixtures for construct and runtime tests."""

from pathlib import Path

import aws_cdk as cdk
import pytest


@pytest.fixture
def app() -> cdk.App:
  """Create a CDK App for testing."""
  return cdk.App()


@pytest.fixture
def stack(app: cdk.App) -> cdk.Stack:
  """Create a CDK Stack for testing."""
  return cdk.Stack(app, "TestStack", env=cdk.Environment(region="us-east-1"))


@pytest.fixture
def build_dir(tmp_path: Path) -> Path:
  """A small SPA build output."""
  build = tmp_path / "build"
  (build / "static" / "js").mkdir(parents=True)
  (build / "index.html").write_text("<!doctype html><div id=root></div>")
  (build / "static" / "js" / "main.js").write_text("console.log('hi')")
  return build
