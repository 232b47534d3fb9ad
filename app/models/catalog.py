from sqlmodel import Field, SQLModel


class ServiceBase(SQLModel):
    name: str
    code: str = Field(unique=True, index=True)
    category: str
    description: str | None = None
    duration_minutes: int
    active: bool = True


class Service(ServiceBase, table=True):
    __tablename__ = "services"
    id: int | None = Field(default=None, primary_key=True)


class ServicePublic(ServiceBase):
    id: int


class BodyPartBase(SQLModel):
    name: str
    service_id: int = Field(foreign_key="services.id", index=True)
    preparation_text: str | None = None
    active: bool = True


class BodyPart(BodyPartBase, table=True):
    __tablename__ = "body_parts"
    id: int | None = Field(default=None, primary_key=True)


class BodyPartPublic(BodyPartBase):
    id: int


class BodyPartPreparation(SQLModel):
    id: int
    name: str
    preparation_text: str | None = None
    service_name: str
    service_duration_minutes: int
