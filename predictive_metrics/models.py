# predictive_metrics/models.py
from sqlalchemy import Column, Integer, String, Float, Date, DateTime, Boolean, ForeignKey, Text, Index, JSON
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class MLModel(Base):
    """Model registry entry; at most one active row per model_type."""
    __tablename__ = 'ml_models'

    model_id = Column(Integer, primary_key=True, autoincrement=True)
    model_name = Column(String(100), nullable=False)
    model_type = Column(String(50), nullable=False)  # sales, financial, inventory_anomaly, association, ...
    is_active = Column(Boolean, default=True, nullable=False)
    last_trained = Column(DateTime)
    accuracy = Column(Float)  # 0..100
    parameters = Column(JSON)
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    forecasts = relationship("MLForecast", back_populates="model")
    feature_importances = relationship("MLFeatureImportance", back_populates="model")

    __table_args__ = (
        Index('idx_ml_models_type_active', 'model_type', 'is_active'),
    )


class MLForecast(Base):
    """Stored prediction; only the newest row per key is read back."""
    __tablename__ = 'ml_forecasts'

    forecast_id = Column(Integer, primary_key=True, autoincrement=True)
    model_id = Column(Integer, ForeignKey('ml_models.model_id'), nullable=True)
    forecast_type = Column(String(50), nullable=False)
    resource_type = Column(String(50), nullable=False)
    resource_id = Column(String(100), nullable=True)  # NULL for aggregate forecasts
    start_date = Column(Date)
    end_date = Column(Date)

    # Series for sales/financial, result payload for the other types
    forecast_data = Column(JSON)
    accuracy_metrics = Column(JSON)

    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    model = relationship("MLModel", back_populates="forecasts")

    __table_args__ = (
        Index('idx_ml_forecasts_key', 'forecast_type', 'resource_type', 'resource_id'),
        Index('idx_ml_forecasts_created', 'created_at'),
    )


class MLAnomaly(Base):
    __tablename__ = 'ml_anomalies'

    anomaly_id = Column(Integer, primary_key=True, autoincrement=True)
    anomaly_type = Column(String(50), nullable=False, default='inventory')
    resource_type = Column(String(50), default='ingredient')
    resource_id = Column(Integer)
    detection_start = Column(Date)
    detection_end = Column(Date)
    anomaly_score = Column(Float)
    description = Column(Text)
    is_confirmed = Column(Boolean, default=False)
    is_false_positive = Column(Boolean, default=False)
    created_at = Column(DateTime, default=func.now(), nullable=False)

    __table_args__ = (
        Index('idx_ml_anomalies_resource_window', 'resource_id', 'detection_start', 'detection_end'),
        Index('idx_ml_anomalies_created', 'created_at'),
    )


class MLProductAssociation(Base):
    __tablename__ = 'ml_product_associations'

    association_id = Column(Integer, primary_key=True, autoincrement=True)
    antecedent_item_id = Column(Integer, nullable=False)
    consequent_item_id = Column(Integer, nullable=False)
    antecedent_name = Column(String(255))
    consequent_name = Column(String(255))
    support = Column(Float)
    confidence = Column(Float)
    lift = Column(Float)
    created_at = Column(DateTime, default=func.now(), nullable=False)

    __table_args__ = (
        Index('idx_ml_associations_items', 'antecedent_item_id', 'consequent_item_id'),
        Index('idx_ml_associations_created', 'created_at'),
    )


class MLInventoryRecommendation(Base):
    __tablename__ = 'ml_inventory_recommendations'

    recommendation_id = Column(Integer, primary_key=True, autoincrement=True)
    ingredient_id = Column(Integer, nullable=False)
    recommendation_type = Column(String(20), nullable=False)  # restock, reduce, adjust_min
    current_value = Column(Float)
    recommended_value = Column(Float)
    potential_savings = Column(Float, default=0.0)
    waste_reduction_percent = Column(Float, default=0.0)
    confidence_score = Column(Float)
    reason = Column(Text)
    implementation_status = Column(String(20), nullable=False, default='pending')  # pending -> applied
    applied_by = Column(String(100))
    applied_at = Column(DateTime)
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index('idx_ml_recommendations_key', 'ingredient_id', 'recommendation_type'),
        Index('idx_ml_recommendations_status', 'implementation_status'),
    )


class MLFeatureImportance(Base):
    __tablename__ = 'ml_feature_importance'

    id = Column(Integer, primary_key=True, autoincrement=True)
    model_id = Column(Integer, ForeignKey('ml_models.model_id'), nullable=False)
    model_type = Column(String(50))
    feature_name = Column(String(100), nullable=False)
    importance_score = Column(Float)
    created_at = Column(DateTime, default=func.now(), nullable=False)

    model = relationship("MLModel", back_populates="feature_importances")


class MLPrediction(Base):
    """Audit log of successful inference calls."""
    __tablename__ = 'ml_predictions'

    prediction_id = Column(Integer, primary_key=True, autoincrement=True)
    model_id = Column(Integer, ForeignKey('ml_models.model_id'), nullable=True)
    prediction_type = Column(String(50), nullable=False)
    prediction_date = Column(DateTime, default=func.now(), nullable=False)
    prediction_data = Column(JSON)
    actual_data = Column(JSON)
    accuracy = Column(Float)


class Ingredient(Base):
    """Stock levels targeted by inventory recommendations."""
    __tablename__ = 'ingredients'

    ingredient_id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    unit = Column(String(20))
    quantity = Column(Float, default=0.0)
    minimum_quantity = Column(Float, default=0.0)
    unit_cost = Column(Float, default=0.0)
    last_restock_date = Column(Date)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())
