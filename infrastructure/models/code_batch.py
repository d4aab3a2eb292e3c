"""
兑换码批次数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, Text, Boolean,
    Index, ForeignKey
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from .base import Base


class CodeBatchModel(Base):
    """
    兑换码批次数据库模型

    所有业务规则都在 domain.code_batch.entity.CodeBatch 中
    """
    __tablename__ = "code_batches"

    id = Column(Integer, primary_key=True, index=True)

    # 购买方与商品
    training_center_id = Column(Integer, ForeignKey("training_centers.id"), nullable=False, index=True, comment="培训中心ID")
    acc_id = Column(Integer, ForeignKey("accs.id"), nullable=False, index=True, comment="ACC ID")
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False, comment="课程ID")
    quantity = Column(Integer, nullable=False, comment="购买数量")

    # 金额信息
    unit_price = Column(Numeric(precision=15, scale=2), nullable=False, comment="单价")
    total_amount = Column(Numeric(precision=15, scale=2), nullable=False, comment="总额（折前）")
    discount_amount = Column(Numeric(precision=15, scale=2), nullable=False, default=0, comment="折扣金额")
    final_amount = Column(Numeric(precision=15, scale=2), nullable=False, comment="应付金额")
    currency = Column(String(3), nullable=False, default="USD", comment="货币代码")
    discount_code_id = Column(Integer, ForeignKey("discount_codes.id"), nullable=True, comment="使用的折扣码")

    # 付款
    payment_method = Column(String(20), nullable=False, comment="付款方式: credit_card/manual_payment")
    payment_status = Column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
        comment="付款状态: pending/approved/rejected/completed/failed"
    )
    transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=True, comment="关联交易")
    payment_intent_id = Column(String(200), nullable=True, index=True, comment="支付意图ID（刷卡）")
    payment_receipt_url = Column(String(500), nullable=True, comment="付款凭证URL（人工付款）")
    payment_amount = Column(Numeric(precision=15, scale=2), nullable=True, comment="申报付款金额（人工付款）")

    # 审核
    verified_by = Column(Integer, nullable=True, comment="审核人用户ID")
    verified_at = Column(DateTime(timezone=True), nullable=True, comment="审核时间")
    rejection_reason = Column(Text, nullable=True, comment="驳回原因")

    created_by = Column(Integer, nullable=True, comment="下单用户ID")
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )

    codes = relationship("CertificateCodeModel", back_populates="batch", lazy="noload")

    __table_args__ = (
        Index("ix_code_batches_acc_status", "acc_id", "payment_status"),
    )

    def __repr__(self):
        return (
            f"<CodeBatchModel(id={self.id}, quantity={self.quantity}, "
            f"final_amount={self.final_amount}, payment_status='{self.payment_status}')>"
        )


class CertificateCodeModel(Base):
    """证书兑换码"""
    __tablename__ = "certificate_codes"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(32), unique=True, nullable=False, comment="兑换码（全局唯一）")
    batch_id = Column(
        Integer,
        ForeignKey("code_batches.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="所属批次"
    )
    training_center_id = Column(Integer, nullable=False, comment="培训中心ID")
    acc_id = Column(Integer, nullable=False, comment="ACC ID")
    course_id = Column(Integer, nullable=False, comment="课程ID")
    purchased_price = Column(Numeric(precision=15, scale=2), nullable=False, comment="购入单价")
    discount_applied = Column(Boolean, nullable=False, default=False, comment="是否使用折扣")
    discount_code_id = Column(Integer, nullable=True, comment="折扣码ID")
    status = Column(String(20), nullable=False, default="available", comment="状态: available/used/expired")
    purchased_at = Column(DateTime(timezone=True), nullable=False, comment="购买时间")
    used_at = Column(DateTime(timezone=True), nullable=True, comment="使用时间")
    used_for_certificate_id = Column(Integer, nullable=True, comment="使用该码签发的证书ID")

    batch = relationship("CodeBatchModel", back_populates="codes")

    __table_args__ = (
        Index("ix_certificate_codes_tc_status", "training_center_id", "status"),
    )
