"""Service layer exports."""

from .sign_in import SignInResult, SignInService

__all__ = ["SignInResult", "SignInService"]
