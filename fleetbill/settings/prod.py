from .base import *

DEBUG = False

# À configurer explicitement en prod
ALLOWED_HOSTS = [h for h in ALLOWED_HOSTS if h]

# Cookies sécurisés
SESSION_COOKIE_SECURE = True
CSRF_COOKIE_SECURE = True
SECURE_SSL_REDIRECT = True

# HSTS (ajuster selon politique)
SECURE_HSTS_SECONDS = 31536000
SECURE_HSTS_INCLUDE_SUBDOMAINS = True
SECURE_HSTS_PRELOAD = True

SECURE_REFERRER_POLICY = "same-origin"
SECURE_CONTENT_TYPE_NOSNIFF = True

# Conversion stricte: une ligne non convertible invalide la facture du compte
BILLING["STRICT_CONVERSION"] = env("BILLING_STRICT_CONVERSION", "0") == "1"

# Logging JSON forcé
LOGGING["handlers"]["console"]["formatter"] = "json"
