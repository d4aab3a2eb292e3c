"""
租户相关数据库模型（ACC / 培训中心 / 授权 / 课程）

这些表的增删改由其他子系统负责，采购流程只读取。
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, Index, UniqueConstraint
from datetime import datetime, timezone

from .base import Base


class AccModel(Base):
    __tablename__ = "accs"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, comment="机构名称")
    status = Column(String(20), nullable=False, default="pending", index=True, comment="状态: pending/active/suspended/inactive")
    commission_percentage = Column(
        Numeric(precision=5, scale=2),
        nullable=False,
        default=0,
        comment="平台佣金比例（%）"
    )
    stripe_account_id = Column(String(100), nullable=True, comment="Stripe Connect 账户ID")
    user_id = Column(Integer, nullable=True, index=True, comment="机构管理员用户ID")
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )

    def __repr__(self):
        return f"<AccModel(id={self.id}, name='{self.name}', status='{self.status}')>"


class TrainingCenterModel(Base):
    __tablename__ = "training_centers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, comment="培训中心名称")
    status = Column(String(20), nullable=False, default="active", comment="状态")
    user_id = Column(Integer, nullable=True, index=True, comment="培训中心管理员用户ID")
    stripe_account_id = Column(String(100), nullable=True, comment="Stripe Connect 账户ID")
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )


class TrainingCenterAccAuthorizationModel(Base):
    __tablename__ = "training_center_acc_authorizations"

    id = Column(Integer, primary_key=True, index=True)
    training_center_id = Column(Integer, ForeignKey("training_centers.id", ondelete="CASCADE"), nullable=False, comment="培训中心ID")
    acc_id = Column(Integer, ForeignKey("accs.id", ondelete="CASCADE"), nullable=False, comment="ACC ID")
    status = Column(String(20), nullable=False, default="pending", comment="授权状态: pending/approved/rejected/revoked")
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )

    __table_args__ = (
        UniqueConstraint("training_center_id", "acc_id", name="uq_tc_acc_authorization"),
    )


class CourseModel(Base):
    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, index=True)
    acc_id = Column(Integer, ForeignKey("accs.id", ondelete="CASCADE"), nullable=False, index=True, comment="所属ACC")
    name = Column(String(255), nullable=False, comment="课程名称")
    status = Column(String(20), nullable=False, default="active", comment="状态")

    __table_args__ = (
        Index("ix_courses_acc_status", "acc_id", "status"),
    )
