"""CDK stacks for single-page application hosting."""

from .site_stack import SpaSiteStack

__all__ = ["SpaSiteStack"]
