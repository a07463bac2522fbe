# tools package initializer
from .tokens import TokenCodec, generate_refresh_token, refresh_token_expiry
