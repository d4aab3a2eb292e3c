"""
定价与折扣码数据库模型
"""
from sqlalchemy import (
    Column, Integer, String, Numeric, Date, DateTime, JSON,
    Index, ForeignKey, UniqueConstraint
)
from datetime import datetime, timezone

from .base import Base


class CoursePricingModel(Base):
    """课程定价（按生效区间）"""
    __tablename__ = "course_pricing"

    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, comment="课程ID")
    acc_id = Column(Integer, ForeignKey("accs.id", ondelete="CASCADE"), nullable=False, comment="ACC ID")
    base_price = Column(Numeric(precision=15, scale=2), nullable=False, comment="单价")
    currency = Column(String(3), nullable=False, default="USD", comment="货币代码 ISO-4217")
    group_commission_percentage = Column(Numeric(precision=5, scale=2), nullable=False, default=0, comment="平台佣金比例")
    training_center_commission_percentage = Column(Numeric(precision=5, scale=2), nullable=False, default=0, comment="培训中心佣金比例")
    instructor_commission_percentage = Column(Numeric(precision=5, scale=2), nullable=False, default=0, comment="讲师佣金比例")
    effective_from = Column(Date, nullable=False, comment="生效开始日期")
    effective_to = Column(Date, nullable=True, comment="生效结束日期（含），为空表示长期有效")
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )

    __table_args__ = (
        Index("ix_course_pricing_lookup", "course_id", "acc_id", "effective_from"),
    )

    def __repr__(self):
        return (
            f"<CoursePricingModel(id={self.id}, course_id={self.course_id}, "
            f"base_price={self.base_price}, effective_from={self.effective_from})>"
        )


class DiscountCodeModel(Base):
    """折扣码"""
    __tablename__ = "discount_codes"

    id = Column(Integer, primary_key=True, index=True)
    acc_id = Column(Integer, ForeignKey("accs.id", ondelete="CASCADE"), nullable=False, comment="ACC ID")
    code = Column(String(50), nullable=False, comment="折扣码（同一ACC内唯一）")
    discount_type = Column(String(20), nullable=False, comment="类型: time_limited/quantity_based")
    discount_percentage = Column(Numeric(precision=5, scale=2), nullable=False, comment="折扣比例（%）")
    applicable_course_ids = Column(JSON, nullable=True, comment="适用课程ID列表，为空表示全部课程")
    start_date = Column(Date, nullable=True, comment="开始日期")
    end_date = Column(Date, nullable=True, comment="结束日期")
    total_quantity = Column(Integer, nullable=True, comment="总数量（限量折扣）")
    used_quantity = Column(Integer, nullable=False, default=0, comment="已使用数量")
    status = Column(String(20), nullable=False, default="active", index=True, comment="状态: active/expired/depleted/inactive")
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )

    __table_args__ = (
        UniqueConstraint("acc_id", "code", name="uq_discount_codes_acc_code"),
    )
