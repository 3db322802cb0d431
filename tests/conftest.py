"""Shared pytest fixtures."""
from tests.fixtures.tree_fixtures import *  # noqa: F401,F403
from tests.fixtures.aws_fixtures import *  # noqa: F401,F403
