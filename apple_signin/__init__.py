"""Sign in with Apple OAuth2 client and web service."""
