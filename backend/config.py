# backend.config
from pathlib import Path
import json
import os
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Mapping, Tuple, Union
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=True)

"""
Configuration centrale du backend.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets/URLs (Supabase, MercadoPago), CORS
- Construit CheckoutSettings: valeur immuable injectée dans le workflow d'achat,
  lue une seule fois (jamais relue pendant une requête)
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _env_flag(name: str, default: str = "false") -> bool:
    return _clean_env(os.getenv(name, default)).lower() in ("1", "true", "yes")

# Supabase: URL et clé service-role
SUPABASE_URL = _clean_env(os.getenv("SUPABASE_URL") or os.getenv("NEXT_PUBLIC_SUPABASE_URL") or "")
SUPABASE_SERVICE_KEY = _clean_env(os.getenv("SUPABASE_SERVICE_KEY") or "")

if SUPABASE_URL and not SUPABASE_URL.startswith("http"):
    SUPABASE_URL = "https://" + SUPABASE_URL
if SUPABASE_URL.endswith("/"):
    SUPABASE_URL = SUPABASE_URL.rstrip("/")

# CORS (dev)
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

# MercadoPago: jeton d'accès serveur
MP_ACCESS_TOKEN = _clean_env(os.getenv("MP_ACCESS_TOKEN") or "")

# Checkout: URL de base + suffixes des back_urls
WEBCONF_CHECKOUT_URL = _clean_env(os.getenv("WEBCONF_CHECKOUT_URL") or "http://localhost:8000/checkout")
MP_BACK_URL_SUCCESS = _clean_env(os.getenv("MP_BACK_URL_SUCCESS") or "success")
MP_BACK_URL_PENDING = _clean_env(os.getenv("MP_BACK_URL_PENDING") or "pending")
MP_BACK_URL_FAILURE = _clean_env(os.getenv("MP_BACK_URL_FAILURE") or "failure")

MP_EXCLUDED_PAYMENT_TYPES = [t.strip() for t in os.getenv("MP_EXCLUDED_PAYMENT_TYPES", "").split(",") if t.strip()]
MP_TICKET_PICTURE_URL = _clean_env(os.getenv("MP_TICKET_PICTURE_URL") or "")
MP_CURRENCY_ID = _clean_env(os.getenv("MP_CURRENCY_ID") or "ARS")
MP_ITEM_TITLE_SUFFIX = _clean_env(os.getenv("MP_ITEM_TITLE_SUFFIX") or "")
MP_CATEGORY_TITLES = _clean_env(os.getenv("MP_CATEGORY_TITLES") or "")

# Mode sandbox: prix nominal envoyé à la passerelle (la comptabilité garde le vrai prix)
USE_FAKE_PAYMENTS = _env_flag("USE_FAKE_PAYMENTS")
FAKE_UNIT_PRICE = _clean_env(os.getenv("FAKE_UNIT_PRICE") or "2")

# Notifications IPN (désactivées tant que le webhook n'est pas validé en prod)
MP_IPN_ENABLED = _env_flag("MP_IPN_ENABLED")
MP_NOTIFICATION_URL = _clean_env(os.getenv("MP_NOTIFICATION_URL") or "")

DEFAULT_CATEGORY_TITLES: Dict[str, str] = {"1": "Single", "2": "Pair", "3": "Trio"}


def parse_category_titles(raw: str) -> Dict[str, str]:
    """
    Parse MP_CATEGORY_TITLES (JSON objet {"<category_id>": "<titre>"}).
    - Vide => DEFAULT_CATEGORY_TITLES
    - Les clés sont normalisées en str (les category_id Supabase peuvent être int)
    """
    if not raw:
        return dict(DEFAULT_CATEGORY_TITLES)
    try:
        data = json.loads(raw)
    except ValueError as e:
        raise ValueError(f"MP_CATEGORY_TITLES invalide: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("MP_CATEGORY_TITLES doit être un objet JSON")
    return {str(k): str(v) for k, v in data.items()}


@dataclass(frozen=True)
class CheckoutSettings:
    checkout_url: str
    back_url_success: str = "success"
    back_url_pending: str = "pending"
    back_url_failure: str = "failure"
    excluded_payment_types: Tuple[str, ...] = ()
    use_fake_payments: bool = False
    fake_unit_price: Decimal = Decimal("2")
    picture_url: str = ""
    currency_id: str = "ARS"
    # paires (category_id, titre), figées à la construction
    category_titles: Union[Tuple[Tuple[str, str], ...], Mapping[str, str]] = tuple(DEFAULT_CATEGORY_TITLES.items())
    title_suffix: str = ""
    access_token: str = ""
    ipn_enabled: bool = False
    notification_url: str = ""

    def __post_init__(self):
        titles = self.category_titles
        pairs = titles.items() if isinstance(titles, Mapping) else titles
        object.__setattr__(self, "category_titles", tuple((str(k), str(v)) for k, v in pairs))

    def back_url(self, suffix: str) -> str:
        return f"{self.checkout_url.rstrip('/')}/{suffix.lstrip('/')}"

    def title_for(self, category_id) -> str:
        key = str(category_id)
        title = dict(self.category_titles).get(key) or f"Category {key}"
        return f"{title} {self.title_suffix}".strip() if self.title_suffix else title


def load_checkout_settings() -> CheckoutSettings:
    """
    Construit CheckoutSettings depuis les constantes du module (env déjà chargé).
    Appelé une fois à la construction du service d'achat.
    """
    return CheckoutSettings(
        checkout_url=WEBCONF_CHECKOUT_URL,
        back_url_success=MP_BACK_URL_SUCCESS,
        back_url_pending=MP_BACK_URL_PENDING,
        back_url_failure=MP_BACK_URL_FAILURE,
        excluded_payment_types=tuple(MP_EXCLUDED_PAYMENT_TYPES),
        use_fake_payments=USE_FAKE_PAYMENTS,
        fake_unit_price=Decimal(FAKE_UNIT_PRICE),
        picture_url=MP_TICKET_PICTURE_URL,
        currency_id=MP_CURRENCY_ID,
        category_titles=parse_category_titles(MP_CATEGORY_TITLES),
        title_suffix=MP_ITEM_TITLE_SUFFIX,
        access_token=MP_ACCESS_TOKEN,
        ipn_enabled=MP_IPN_ENABLED,
        notification_url=MP_NOTIFICATION_URL,
    )
