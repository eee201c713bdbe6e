from sqlalchemy import Column, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, relationship


# All the tables live on this Base so tests can create the schema in one call
class Base(DeclarativeBase):
    pass


# NOTE: column declaration order is the column order of the generated INSERT
# statements. The downstream database depends on it, do not reorder.


# =========================
# Module (pallet)
# =========================
class Module(Base):
    __tablename__ = "module"

    # on-chain pallet index, assigned explicitly (System is always 0)
    id = Column(Integer, primary_key=True, autoincrement=False)

    name = Column(String, nullable=False, unique=True)
    description = Column(Text, nullable=False)

    # Relationships
    functions = relationship(
        "Function",
        back_populates="module",
        cascade="all, delete-orphan",
    )


# =========================
# Function (extrinsic call)
# =========================
class Function(Base):
    """
    One callable of a pallet.

    `id` is the export sequence number, `call_index` is the real on-chain
    index used to decode raw call data. They are NOT interchangeable.
    """

    __tablename__ = "function"

    id = Column(Integer, primary_key=True, autoincrement=False)

    module_id = Column(
        Integer,
        ForeignKey("module.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    call_index = Column(Integer, nullable=False)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=False)

    # Relationships
    module = relationship("Module", back_populates="functions")

    parameters = relationship(
        "FunctionParameter",
        back_populates="function",
        cascade="all, delete-orphan",
    )


# =========================
# Function parameter
# =========================
class FunctionParameter(Base):
    __tablename__ = "function_parameters"

    id = Column(Integer, primary_key=True, autoincrement=False)

    function_id = Column(
        Integer,
        ForeignKey("function.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name = Column(String, nullable=False)
    type = Column(String, nullable=False)  # display name, e.g. "Compact<u128>"

    # Relationships
    function = relationship("Function", back_populates="parameters")
