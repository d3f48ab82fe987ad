"""
RP Conseil Hub — Dossier Pydantic Models
==========================================

Sale ("dossier") and client records as stored in Supabase, the legacy
spreadsheet row mapping, and the request/response models of the API.

Amounts stay in their stored form (fr-FR strings such as "8 892,00 €",
the "SO" sentinel, or plain numbers); scripts.lib.parsers turns them into
floats at aggregation time so "SO" and a real 0 are never conflated here.
"""
from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from scripts.lib.parsers import (
    format_currency,
    format_percent,
    parse_currency,
    parse_date,
    parse_percent,
)

Amount = Optional[Union[str, float]]


class SaleStatus:
    """Status labels used in the "Statut" column."""
    TO_INVOICE = "A facturer"
    INVOICED = "Facturé"
    AWAITING_PAYMENT = "Facturé en attente de paiement"
    PAID = "Réglé"
    CANCELLED = "Annulé"
    IN_PROGRESS = "En cours"
    DISPUTED = "Litige"


SALE_TEXT_FIELDS = (
    "produit", "client_nom", "type", "parrain", "date_vente", "programme",
    "promoteur", "dispositif", "date_facture", "statut", "annulation_boolean",
    "commentaires",
)


def _coerce_year(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    text = str(value).strip()
    if text.isdigit():
        return int(text)
    return None


# ─── Core Records ───────────────────────────────────────────

class Sale(BaseModel):
    """One product sold to a client (a "dossier")."""
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    id: Optional[Union[int, str]] = None
    client_id: Optional[str] = None
    produit_id: Optional[str] = None
    row_number: Optional[int] = None

    produit: str = ""
    client_nom: str = ""
    type: str = ""
    parrain: str = ""
    date_vente: str = Field("", alias="dateVente")
    programme: str = ""
    promoteur: str = ""
    dispositif: str = ""

    prix_pack: Amount = Field(None, alias="prixPack")
    prix: Amount = None
    remuneration: Amount = None
    ca_general: Amount = Field(None, alias="caGeneral")
    ca_perso: Amount = Field(None, alias="caPerso")
    f_ingenierie: Amount = Field(None, alias="fIngenierie")
    f_ingenierie_rpc: Amount = Field(None, alias="fIngenierieRPC")
    montant_facturable: Amount = Field(None, alias="montantFacturable")
    annulation: Amount = None

    date_facture: str = Field("", alias="dateFacture")
    statut: str = ""
    annulation_boolean: str = Field("", alias="annulationBoolean")
    commentaires: str = ""
    annee: Optional[int] = None

    @model_validator(mode="before")
    @classmethod
    def _default_year(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        year = _coerce_year(data.get("annee"))
        if year is None:
            sold_on = parse_date(data.get("dateVente", data.get("date_vente")))
            year = sold_on.year if sold_on else None
        return {**data, "annee": year}

    @field_validator(*SALE_TEXT_FIELDS, mode="before")
    @classmethod
    def _blank_text(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value)

    @field_validator("client_id", "produit_id", mode="before")
    @classmethod
    def _stringify_ref(cls, value: Any) -> Optional[str]:
        if value in (None, ""):
            return None
        return str(value)

    @classmethod
    def from_legacy_row(cls, raw: Dict[str, Any]) -> "Sale":
        """Map a first-generation spreadsheet/webhook row onto a Sale.

        The sheet keyed clients by name only, so client_id stays empty.
        """
        try:
            sale_id = int(raw.get("ID") or 0)
        except (TypeError, ValueError):
            sale_id = 0

        annulation = raw.get("Annulation")
        if isinstance(annulation, (int, float)) and not isinstance(annulation, bool):
            annulation = format_currency(annulation) if annulation else ""
        elif annulation is None:
            annulation = ""

        return cls(
            id=sale_id,
            row_number=raw.get("row_number"),
            produit=raw.get("Produit"),
            client_nom=(raw.get("Nom ") or raw.get("Nom") or "").strip(),
            type=raw.get("F / P"),
            parrain=raw.get("Nom Parrain"),
            date_vente=raw.get("Date de la vente"),
            programme=raw.get("Programme / lot / localisation "),
            promoteur=raw.get("Promoteur"),
            prix_pack=format_currency(raw.get("Prix pack") or 0),
            prix=format_currency(raw.get("Prix") or 0),
            dispositif=raw.get("Dispositif"),
            remuneration=format_percent(raw.get("T. Rem") or 0),
            ca_general=format_currency(raw.get("CA général ") or 0),
            ca_perso=format_currency(raw.get("CA perso") or 0),
            f_ingenierie=raw.get("F. Ingénierie"),
            f_ingenierie_rpc=format_currency(raw.get("F. Ingénierie RPC") or 0),
            montant_facturable=format_currency(raw.get("Montant facturable") or 0),
            date_facture=raw.get("Date Facture"),
            annulation=annulation,
            statut=raw.get("Statut"),
            annulation_boolean=raw.get("AnnulationBoolean"),
            commentaires=raw.get("Commentaires / N° facture"),
            annee=raw.get("Année"),
        )

    def to_legacy_row(self) -> Dict[str, Any]:
        """Inverse of from_legacy_row: numeric cells, fractional rate."""
        return {
            "row_number": self.row_number or self.id,
            "ID": self.id,
            "Produit": self.produit,
            "Nom ": self.client_nom,
            "F / P": self.type,
            "Nom Parrain": self.parrain,
            "Date de la vente": self.date_vente,
            "Programme / lot / localisation ": self.programme,
            "Promoteur": self.promoteur,
            "Prix pack": parse_currency(self.prix_pack),
            "Prix": parse_currency(self.prix),
            "Dispositif": self.dispositif,
            "T. Rem": parse_percent(self.remuneration),
            "CA général ": parse_currency(self.ca_general),
            "CA perso": parse_currency(self.ca_perso),
            "F. Ingénierie": self.f_ingenierie,
            "F. Ingénierie RPC": parse_currency(self.f_ingenierie_rpc),
            "Montant facturable": parse_currency(self.montant_facturable),
            "Date Facture": self.date_facture,
            "Annulation": parse_currency(self.annulation) if self.annulation else "",
            "Statut": self.statut,
            "AnnulationBoolean": self.annulation_boolean,
            "Commentaires / N° facture": self.commentaires,
            "Année": str(self.annee) if self.annee is not None else "",
        }


class Client(BaseModel):
    """A client record with its patrimonial profile."""
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    id: Union[str, int]
    nom: str = ""
    prenom: Optional[str] = None
    patrimoine_brut: float = 0.0
    date_entree: Optional[str] = None
    statut: Optional[str] = None
    identite: Optional[str] = None
    situation_matrimoniale_fiscale: Optional[str] = None
    immobilier: Optional[str] = None
    autres_charges: Optional[str] = None
    epargne: Optional[str] = None
    objectifs: Optional[str] = None
    autres_observations: Optional[str] = None
    simulation_1: Optional[str] = None
    simulation_2: Optional[str] = None
    simulation_3: Optional[str] = None
    capacite_epargne: Optional[str] = None
    capacite_emprunt: Optional[str] = None
    analyse_profil: Optional[str] = None
    infos_complementaires: Optional[str] = None

    @field_validator("nom", mode="before")
    @classmethod
    def _blank_name(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("patrimoine_brut", mode="before")
    @classmethod
    def _parse_patrimoine(cls, value: Any) -> float:
        return parse_currency(value)

    @field_validator("date_entree", mode="before")
    @classmethod
    def _stringify_date(cls, value: Any) -> Optional[str]:
        if value in (None, ""):
            return None
        return str(value)

    @property
    def display_name(self) -> str:
        return self.nom.strip()


class Product(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Union[str, int]
    nom: str
    description: Optional[str] = None


class SimulationType(BaseModel):
    """A generation template offered in the client simulation modal."""
    model_config = ConfigDict(extra="ignore")

    id: int
    created_at: Optional[str] = None
    type: str = ""
    description: str = ""
    nom: str = ""


def derive_clients_from_sales(sales: List[Sale]) -> List[Client]:
    """Rebuild clients for the legacy sheet, where a client is just a name.

    Ids are sequential in first-seen order, which is why the stable-id
    scheme replaced it.
    """
    clients: Dict[str, Client] = {}
    for sale in sales:
        name = sale.client_nom
        if name not in clients:
            clients[name] = Client(id=len(clients) + 1, nom=name)
    return list(clients.values())


# ─── API Models ─────────────────────────────────────────────

class ClientSummary(BaseModel):
    """A client with the aggregates derived from its sales."""
    client: Client
    sales: List[Sale] = Field(default_factory=list)
    total_ca: float = 0.0
    total_ca_perso: float = 0.0
    sale_count: int = 0
    cancelled_count: int = 0
    last_sale_date: Optional[date] = None


class SaleUpdate(BaseModel):
    """Per-field sale update; only the fields sent are written."""
    model_config = ConfigDict(populate_by_name=True)

    produit: Optional[str] = None
    type: Optional[str] = None
    parrain: Optional[str] = None
    date_vente: Optional[str] = Field(None, alias="dateVente")
    programme: Optional[str] = None
    promoteur: Optional[str] = None
    dispositif: Optional[str] = None
    prix_pack: Amount = Field(None, alias="prixPack")
    prix: Amount = None
    remuneration: Amount = None
    ca_general: Amount = Field(None, alias="caGeneral")
    ca_perso: Amount = Field(None, alias="caPerso")
    f_ingenierie: Amount = Field(None, alias="fIngenierie")
    f_ingenierie_rpc: Amount = Field(None, alias="fIngenierieRPC")
    montant_facturable: Amount = Field(None, alias="montantFacturable")
    annulation: Amount = None
    date_facture: Optional[str] = Field(None, alias="dateFacture")
    statut: Optional[str] = None
    annulation_boolean: Optional[str] = Field(None, alias="annulationBoolean")
    commentaires: Optional[str] = None
    annee: Optional[int] = None

    def to_row(self) -> Dict[str, Any]:
        """Column -> value dict with store column names."""
        return self.model_dump(by_alias=True, exclude_unset=True)


class ClientUpdate(BaseModel):
    """Per-field client profile update."""
    nom: Optional[str] = None
    prenom: Optional[str] = None
    patrimoine_brut: Optional[float] = None
    statut: Optional[str] = None
    identite: Optional[str] = None
    situation_matrimoniale_fiscale: Optional[str] = None
    immobilier: Optional[str] = None
    autres_charges: Optional[str] = None
    epargne: Optional[str] = None
    objectifs: Optional[str] = None
    autres_observations: Optional[str] = None
    capacite_epargne: Optional[str] = None
    capacite_emprunt: Optional[str] = None
    analyse_profil: Optional[str] = None
    infos_complementaires: Optional[str] = None

    def to_row(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class SimulationOverrides(BaseModel):
    """User-adjusted N+1 simulator inputs; unset fields keep their defaults."""
    nb_sales: Optional[int] = None
    fiche_pct: Optional[float] = None
    avg_ca_perso: Optional[float] = None
    avg_ca_general: Optional[float] = None
