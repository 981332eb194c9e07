# storefront/data/models/product.py
# katalog jest wlasnoscia panelu admina, tutaj tylko czytamy
# (poza licznikiem stock na wariancie)
from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, Numeric, Boolean
from sqlalchemy.orm import relationship

from storefront.data.database import Base


class CategoryModel(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)


class ProductModel(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    default_category_id = Column(Integer, ForeignKey("categories.id"), nullable=True)
    product_img = Column(String, nullable=True)
    brand_name = Column(String, nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    category = relationship("CategoryModel")
    variants = relationship("ProductVariantModel", back_populates="product")


class ProductVariantModel(Base):
    __tablename__ = "product_variants"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    sku = Column(String, nullable=True)

    price = Column(Numeric(10, 2), nullable=False)
    sale_price = Column(Numeric(10, 2), nullable=True)
    stock = Column(Integer, nullable=True)  # NULL = stan nie jest sledzony

    size = Column(String, nullable=True)
    color = Column(String, nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    product = relationship("ProductModel", back_populates="variants")


class SaleModel(Base):
    __tablename__ = "sales"

    id = Column(Integer, primary_key=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    discount_percent = Column(Numeric(5, 2), nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    start_at = Column(DateTime(timezone=True), nullable=True)
    end_at = Column(DateTime(timezone=True), nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
