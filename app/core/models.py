from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    String,
    Numeric,
    TIMESTAMP,
    Text,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from app.core.database import Base


# =========================
# Supplier
# =========================
class Supplier(Base):
    __tablename__ = "suppliers"

    supplierid = Column(Integer, primary_key=True, autoincrement=True)

    suppliername = Column(String, nullable=False)
    contactperson = Column(String)
    phonenumber = Column(String)
    supplieremail = Column(String)
    address = Column(String)
    supplierstatus = Column(String)
    defectreturned = Column(Integer, nullable=True)

    createdat = Column(TIMESTAMP, nullable=False, server_default=func.now())
    updatedat = Column(TIMESTAMP, nullable=False, server_default=func.now())

    # Relationships
    products = relationship("Product", back_populates="supplier")


# =========================
# Product
# =========================
class Product(Base):
    """
    A sellable product. Prices live on its variants (ProductCategory),
    the product row only carries the descriptive text we tokenize for
    keyword reranking.
    """

    __tablename__ = "products"

    productid = Column(Integer, primary_key=True, autoincrement=True)

    productname = Column(String(150), nullable=False)
    description = Column(Text)
    image_url = Column(String)

    supplierid = Column(
        Integer,
        ForeignKey("suppliers.supplierid"),
        nullable=False,
        index=True,
    )

    createdat = Column(TIMESTAMP, nullable=False, server_default=func.now())
    updatedat = Column(TIMESTAMP, nullable=False, server_default=func.now())

    # Relationships
    supplier = relationship("Supplier", back_populates="products")

    variants = relationship(
        "ProductCategory",
        back_populates="product",
        cascade="all, delete-orphan",
    )


# =========================
# ProductCategory (variant row)
# =========================
class ProductCategory(Base):
    """
    One priced variant of a product (color / age size).

    A product usually has several of these rows; selects collapse
    them back to one representative per product.
    """

    __tablename__ = "productcategory"

    productcategoryid = Column(Integer, primary_key=True, autoincrement=True)

    productid = Column(
        Integer,
        ForeignKey("products.productid", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    price = Column(Numeric(12, 2), nullable=False)
    cost = Column(Numeric(12, 2), nullable=False)

    color = Column(String, nullable=True)
    agesize = Column(String, nullable=True)

    currentstock = Column(Integer, nullable=False, default=0)
    reorderpoint = Column(Integer, nullable=False, default=0)
    updatedstock = Column(TIMESTAMP, nullable=True)

    # Relationships
    product = relationship("Product", back_populates="variants")
