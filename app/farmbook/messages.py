"""
Error code -> message key -> localized string.

The API contract is the `code`; the human-readable `error` string is looked up
here when the envelope is built.
"""
from __future__ import annotations

ERROR_MESSAGE_KEYS: dict[str, str] = {
    "UNAUTHORIZED": "errors.auth.unauthorized",
    "FORBIDDEN": "errors.auth.forbidden",
    "OWNER_ONLY": "errors.auth.owner_only",
    "INVALID_CREDENTIALS": "errors.auth.invalid_credentials",
    "EMAIL_TAKEN": "errors.auth.email_taken",
    "NO_ACTIVE_FARM": "errors.auth.no_active_farm",
    "VALIDATION_ERROR": "errors.validation.generic",
    "TARGET_TYPE_MISMATCH": "errors.events.target_type_mismatch",
    "NOT_FOUND": "errors.not_found.generic",
    "USER_NOT_FOUND": "errors.not_found.user",
    "FARM_NOT_FOUND": "errors.not_found.farm",
    "MEMBER_NOT_FOUND": "errors.not_found.member",
    "ANIMAL_NOT_FOUND": "errors.not_found.animal",
    "TARGET_NOT_FOUND": "errors.not_found.target",
    "EVENT_NOT_FOUND": "errors.not_found.event",
    "INVITATION_NOT_FOUND": "errors.not_found.invitation",
    "CREDIT_EXPENSE_NOT_FOUND": "errors.not_found.credit_expense",
    "LAST_OWNER": "errors.members.last_owner",
    "ALREADY_MEMBER": "errors.members.already_member",
    "INVITATION_PENDING": "errors.invitations.pending",
    "INVITATION_INVALID": "errors.invitations.invalid",
    "INVITATION_EXPIRED": "errors.invitations.expired",
    "INVITATION_EMAIL_MISMATCH": "errors.invitations.email_mismatch",
    "REIMBURSEMENT_EXCEEDS_DEBT": "errors.cashbox.reimbursement_exceeds_debt",
    "DUPLICATE_RESOURCE": "errors.conflict.duplicate",
    "METHOD_NOT_ALLOWED": "errors.http.method_not_allowed",
    "BAD_REQUEST": "errors.http.bad_request",
    "INTERNAL_ERROR": "errors.internal",
}

CATALOGUES: dict[str, dict[str, str]] = {
    "en": {
        "errors.auth.unauthorized": "Authentication required.",
        "errors.auth.forbidden": "You do not have permission to perform this action.",
        "errors.auth.owner_only": "Only farm owners can perform this action.",
        "errors.auth.invalid_credentials": "Invalid email or password.",
        "errors.auth.email_taken": "An account with this email already exists.",
        "errors.auth.no_active_farm": "No active farm selected.",
        "errors.validation.generic": "Invalid input.",
        "errors.events.target_type_mismatch": "The target type does not match the selected animal or lot.",
        "errors.not_found.generic": "Resource not found.",
        "errors.not_found.user": "User not found.",
        "errors.not_found.farm": "Farm not found.",
        "errors.not_found.member": "Member not found.",
        "errors.not_found.animal": "Animal not found.",
        "errors.not_found.target": "Target animal or lot not found.",
        "errors.not_found.event": "Event not found.",
        "errors.not_found.invitation": "Invitation not found.",
        "errors.not_found.credit_expense": "Credit expense not found.",
        "errors.members.last_owner": "A farm must keep at least one active owner.",
        "errors.members.already_member": "This user is already a member of the farm.",
        "errors.invitations.pending": "An invitation is already pending for this email.",
        "errors.invitations.invalid": "This invitation is no longer valid.",
        "errors.invitations.expired": "This invitation has expired.",
        "errors.invitations.email_mismatch": "This invitation was sent to a different email address.",
        "errors.cashbox.reimbursement_exceeds_debt": "The reimbursement exceeds the remaining amount owed.",
        "errors.conflict.duplicate": "Resource already exists.",
        "errors.http.method_not_allowed": "Method not allowed.",
        "errors.http.bad_request": "Bad request.",
        "errors.internal": "An unexpected error occurred.",
    },
    "fr": {
        "errors.auth.unauthorized": "Authentification requise.",
        "errors.auth.forbidden": "Vous n'avez pas la permission d'effectuer cette action.",
        "errors.auth.owner_only": "Seuls les propriétaires de la ferme peuvent effectuer cette action.",
        "errors.auth.invalid_credentials": "Email ou mot de passe invalide.",
        "errors.auth.email_taken": "Un compte existe déjà avec cet email.",
        "errors.auth.no_active_farm": "Aucune ferme active sélectionnée.",
        "errors.validation.generic": "Données invalides.",
        "errors.events.target_type_mismatch": "Le type de cible ne correspond pas à l'animal ou au lot choisi.",
        "errors.not_found.generic": "Ressource introuvable.",
        "errors.not_found.user": "Utilisateur introuvable.",
        "errors.not_found.farm": "Ferme introuvable.",
        "errors.not_found.member": "Membre introuvable.",
        "errors.not_found.animal": "Animal introuvable.",
        "errors.not_found.target": "Animal ou lot introuvable.",
        "errors.not_found.event": "Événement introuvable.",
        "errors.not_found.invitation": "Invitation introuvable.",
        "errors.not_found.credit_expense": "Dépense à crédit introuvable.",
        "errors.members.last_owner": "Une ferme doit conserver au moins un propriétaire actif.",
        "errors.members.already_member": "Cet utilisateur est déjà membre de la ferme.",
        "errors.invitations.pending": "Une invitation est déjà en attente pour cet email.",
        "errors.invitations.invalid": "Cette invitation n'est plus valide.",
        "errors.invitations.expired": "Cette invitation a expiré.",
        "errors.invitations.email_mismatch": "Cette invitation a été envoyée à une autre adresse email.",
        "errors.cashbox.reimbursement_exceeds_debt": "Le remboursement dépasse le montant restant dû.",
        "errors.conflict.duplicate": "La ressource existe déjà.",
        "errors.http.method_not_allowed": "Méthode non autorisée.",
        "errors.http.bad_request": "Requête invalide.",
        "errors.internal": "Une erreur inattendue s'est produite.",
    },
}

DEFAULT_LOCALE = "en"


def resolve_message(code: str, locale: str | None = None, fallback: str | None = None) -> str:
    key = ERROR_MESSAGE_KEYS.get(code)
    if key is None:
        return fallback or code
    catalogue = CATALOGUES.get(locale or DEFAULT_LOCALE) or CATALOGUES[DEFAULT_LOCALE]
    return catalogue.get(key) or CATALOGUES[DEFAULT_LOCALE].get(key) or fallback or code
