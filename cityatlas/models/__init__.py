# Import models here so Alembic can discover metadata.
from cityatlas.models.principal import Principal  # noqa: F401
from cityatlas.models.tenant import Tenant  # noqa: F401
from cityatlas.models.grant import Grant  # noqa: F401

# Flexible taxonomy + classified records
from cityatlas.models.taxonomy import (  # noqa: F401
    TaxonomyType,
    TaxonomyTypeTranslation,
    TaxonomyValue,
    TaxonomyValueTranslation,
)
from cityatlas.models.language import Language, LanguageTaxonomy  # noqa: F401
from cityatlas.models.invitation import Invitation, InvitationTenant  # noqa: F401
