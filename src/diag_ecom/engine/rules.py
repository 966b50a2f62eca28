"""Tables de règles déclaratives : catégorie financière et modèle logistique.

Chaque table est une liste ordonnée évaluée en « première règle gagnante ».
La catégorie se décide d'abord sur les champs structurés (type de transaction,
type de montant) ; la description libre, souvent un titre produit, ne sert
qu'en dernier recours.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from diag_ecom.models import UNKNOWN

CATEGORY_DEFAULT = ("other", "unknown")

# Reprise de frais (commission remboursée par la marketplace)
FEE_REVERSAL = "fee_reversal"


@dataclass(frozen=True)
class KeywordRule:
    """Règle : au moins un mot-clé de ``any_of`` ET (si fourni) un de ``and_any_of``.

    ``whole_word`` impose des frontières de mot (codes courts comme ``fba``).
    """

    any_of: tuple[str, ...]
    result: tuple[str, str]
    and_any_of: tuple[str, ...] = ()
    whole_word: bool = False

    def _contains(self, text: str, keyword: str) -> bool:
        if self.whole_word:
            return re.search(rf"(?<![a-z0-9]){re.escape(keyword)}(?![a-z0-9])", text) is not None
        return keyword in text

    def matches(self, text: str) -> bool:
        if not any(self._contains(text, k) for k in self.any_of):
            return False
        if self.and_any_of and not any(self._contains(text, k) for k in self.and_any_of):
            return False
        return True


def first_match(
    rules: list[KeywordRule], text: str, default: tuple[str, str] | None
) -> tuple[str, str] | None:
    """Résultat de la première règle qui correspond, ``default`` sinon."""
    lowered = text.lower()
    for rule in rules:
        if rule.matches(lowered):
            return rule.result
    return default


CATEGORY_RULES: list[KeywordRule] = [
    KeywordRule(
        (
            "reimbursement", "reimbursements", "compensation", "erstattung",
            "reembolso de inventario", "remboursement fba", "indemnisation",
        ),
        ("reimbursement", "other"),
        whole_word=True,
    ),
    # Avant les remboursements : Refund / ItemFees est une reprise de frais
    KeywordRule(
        (
            "fee", "fees", "itemfees", "servicefee", "commission", "comisión",
            "gebühr", "gebühren", "frais", "tarifa", "tarifas",
        ),
        ("fee", "other"),
        whole_word=True,
    ),
    KeywordRule(("withheldtax", "withheld tax", "facilitatortax", "facilitator tax"), ("other", "tax")),
    KeywordRule(("promotion", "promotions", "promo", "rebate", "rebates"), ("revenue", "promotion"), whole_word=True),
    KeywordRule(
        (
            "refund", "refunds", "return", "returns", "chargeback",
            "reembolso", "devolución", "rückerstattung", "remboursement",
        ),
        ("refund", "refund"),
        whole_word=True,
    ),
    KeywordRule(("cost of advertising", "advertising", "sponsored"), ("fee", "advertising")),
    KeywordRule(
        ("transfer", "disbursement", "virement", "transferencia", "überweisung"),
        ("other", "transfer"),
        whole_word=True,
    ),
    KeywordRule(
        (
            "order", "orders", "shipment", "sale", "sales", "principal", "itemprice",
            "shipping credit", "shippingcharge", "pedido", "commande", "bestellung",
        ),
        ("revenue", "sales"),
        whole_word=True,
    ),
]

# Sous-catégories, affinées une fois la catégorie connue
FEE_RULES: list[KeywordRule] = [
    KeywordRule(("referral", "selling", "commission", "comisión", "verkaufsgebühr"), ("fee", "referral")),
    KeywordRule(("storage", "almacenamiento", "lager", "stockage"), ("fee", "storage")),
    KeywordRule(("inbound", "placement"), ("fee", "inbound_placement")),
    KeywordRule(("removal", "disposal"), ("fee", "removal")),
    KeywordRule(("liquidation",), ("fee", "liquidation")),
    KeywordRule(("fulfillment", "fulfilment", "pick & pack"), ("fee", "fba")),
    KeywordRule(("fba",), ("fee", "fba"), whole_word=True),
    KeywordRule(("advertising", "sponsored", "publicidad"), ("fee", "advertising")),
    KeywordRule(("ads", "ppc"), ("fee", "advertising"), whole_word=True),
    KeywordRule(("regulatory", "compliance"), ("fee", "regulatory")),
    KeywordRule(("epr", "weee"), ("fee", "regulatory"), whole_word=True),
    KeywordRule(("subscription", "suscripción", "abonnement"), ("fee", "subscription")),
    KeywordRule(("closing",), ("fee", "closing")),
    KeywordRule(("vcf",), ("fee", "closing"), whole_word=True),
]

REIMBURSEMENT_RULES: list[KeywordRule] = [
    KeywordRule(("lost", "perdu", "perdido", "verloren"), ("reimbursement", "lost")),
    KeywordRule(("damaged", "endommagé", "dañado", "beschädigt"), ("reimbursement", "damaged")),
    KeywordRule(("customer", "cliente", "client"), ("reimbursement", "customer_service")),
]

_TAX_RULE = KeywordRule(("tax", "taxes", "vat", "iva", "mwst", "tva"), ("other", "tax"), whole_word=True)

REVENUE_RULES: list[KeywordRule] = [
    _TAX_RULE,
    KeywordRule(("shipping", "shippingcharge", "postage"), ("revenue", "shipping")),
    KeywordRule(("giftwrap", "gift wrap"), ("revenue", "giftwrap")),
]

REFUND_RULES: list[KeywordRule] = [
    _TAX_RULE,
    KeywordRule(("shipping", "shippingcharge", "postage"), ("refund", "shipping")),
    KeywordRule(("giftwrap", "gift wrap"), ("refund", "giftwrap")),
]

SUBCATEGORY_RULES: dict[str, list[KeywordRule]] = {
    "fee": FEE_RULES,
    "reimbursement": REIMBURSEMENT_RULES,
    "revenue": REVENUE_RULES,
    "refund": REFUND_RULES,
}

# Rapports mono-catégorie : la catégorie ne dépend pas du contenu de la ligne
REPORT_TYPE_CATEGORY: dict[str, tuple[str, str]] = {
    "ads": ("fee", "advertising"),
    "reimbursement": ("reimbursement", "other"),
    "refund": ("refund", "refund"),
    "storage": ("fee", "storage"),
}

# Catégories dont la description est un titre produit
_PRODUCT_CATEGORIES = frozenset({"revenue", "refund"})

# Valeurs exactes de la colonne logistique
FULFILLMENT_EXACT_VALUES: dict[str, str] = {
    "amazon": "FBA",
    "afn": "FBA",
    "fba": "FBA",
    "amazon_eu": "FBA",
    "merchant": "FBM",
    "mfn": "FBM",
    "fbm": "FBM",
    "seller": "FBM",
    "vendedor": "FBM",
    "vendeur": "FBM",
    "verkäufer": "FBM",
    "awd": "AWD",
    "swa": "SWA",
}

FULFILLMENT_RULES: list[KeywordRule] = [
    KeywordRule(("awd", "amazon warehousing", "distribution center"), ("AWD", "AWD"), whole_word=True),
    KeywordRule(("swa", "seller warehousing", "seller warehouse"), ("SWA", "SWA"), whole_word=True),
    KeywordRule(
        (
            "fba", "afn", "fulfillment by amazon", "fulfilled by amazon", "amazon fulfilled",
            "logística de amazon", "expédié par amazon", "versand durch amazon",
        ),
        ("FBA", "FBA"),
        whole_word=True,
    ),
    KeywordRule(
        ("fbm", "mfn", "merchant fulfilled", "seller fulfilled", "self-fulfilled", "merchant-fulfilled"),
        ("FBM", "FBM"),
        whole_word=True,
    ),
]


def _join(*parts: str) -> str:
    return " ".join(p for p in parts if p)


def classify_category(
    subtype: str = "",
    amount_type: str = "",
    description: str = "",
    report_type: str = "",
) -> tuple[str, str]:
    """Catégorie / sous-catégorie d'une ligne ; ``("other", "unknown")`` à défaut.

    Ordre de décision : type de rapport mono-catégorie, puis type de
    transaction et type de montant, puis description. La sous-catégorie est
    ensuite affinée ; pour une vente ou un remboursement, la description
    n'y participe que si la ligne porte un type de montant (settlement).
    """
    structured = _join(subtype, amount_type)
    from_description = False
    base = REPORT_TYPE_CATEGORY.get(report_type)
    if base is None:
        base = first_match(CATEGORY_RULES, structured, None)
    if base is None:
        base = first_match(CATEGORY_RULES, description, None)
        from_description = base is not None
    if base is None:
        return CATEGORY_DEFAULT

    category = base[0]
    if amount_type or from_description or category not in _PRODUCT_CATEGORIES:
        text = _join(structured, description)
    else:
        text = structured
    return first_match(SUBCATEGORY_RULES.get(category, []), text, base)


def classify_fulfillment(fulfillment: str = "", description: str = "", sku: str = "") -> str:
    """Modèle logistique ; ``Unknown`` à défaut."""
    exact = FULFILLMENT_EXACT_VALUES.get(fulfillment.lower().strip())
    if exact is not None:
        return exact
    text = _join(fulfillment, description, sku)
    model, _ = first_match(FULFILLMENT_RULES, text, (UNKNOWN, UNKNOWN))
    return model
