"""Working hours repository - one config row per tenant"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import WorkingHoursConfig


class WorkingHoursRepository:
    """Repository for working hours database operations"""

    @staticmethod
    def get_by_tenant(db: Session, tenant_id: str) -> Optional[WorkingHoursConfig]:
        """Get the tenant's config row, if any"""
        return (
            db.query(WorkingHoursConfig)
            .filter(WorkingHoursConfig.tenant_id == tenant_id)
            .first()
        )

    @staticmethod
    def upsert(db: Session, tenant_id: str, **values) -> WorkingHoursConfig:
        """Insert or update the tenant's row; the unique tenant key keeps it single"""
        config = WorkingHoursRepository.get_by_tenant(db, tenant_id)
        if config is None:
            config = WorkingHoursConfig(tenant_id=tenant_id, **values)
            db.add(config)
        else:
            for key, value in values.items():
                setattr(config, key, value)

        db.commit()
        db.refresh(config)
        return config
