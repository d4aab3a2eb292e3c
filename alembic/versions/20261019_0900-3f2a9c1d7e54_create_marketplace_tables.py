"""create_marketplace_tables

Revision ID: 3f2a9c1d7e54
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3f2a9c1d7e54'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _money(name: str, nullable: bool = False, **kw) -> sa.Column:
    return sa.Column(name, sa.Numeric(precision=15, scale=2), nullable=nullable, **kw)


def _percent(name: str, **kw) -> sa.Column:
    return sa.Column(name, sa.Numeric(precision=5, scale=2), nullable=False, **kw)


def _created_at() -> sa.Column:
    return sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, comment='创建时间')


def _updated_at() -> sa.Column:
    return sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, comment='更新时间')


def upgrade() -> None:
    # 租户（只读）
    op.create_table(
        'accs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False, comment='机构名称'),
        sa.Column('status', sa.String(length=20), nullable=False, comment='状态: pending/active/suspended/inactive'),
        _percent('commission_percentage', comment='平台佣金比例（%）'),
        sa.Column('stripe_account_id', sa.String(length=100), nullable=True, comment='Stripe Connect 账户ID'),
        sa.Column('user_id', sa.Integer(), nullable=True, comment='机构管理员用户ID'),
        _created_at(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_accs_id', 'accs', ['id'])
    op.create_index('ix_accs_status', 'accs', ['status'])
    op.create_index('ix_accs_user_id', 'accs', ['user_id'])

    op.create_table(
        'training_centers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False, comment='培训中心名称'),
        sa.Column('status', sa.String(length=20), nullable=False, comment='状态'),
        sa.Column('user_id', sa.Integer(), nullable=True, comment='培训中心管理员用户ID'),
        sa.Column('stripe_account_id', sa.String(length=100), nullable=True, comment='Stripe Connect 账户ID'),
        _created_at(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_training_centers_id', 'training_centers', ['id'])
    op.create_index('ix_training_centers_user_id', 'training_centers', ['user_id'])

    op.create_table(
        'training_center_acc_authorizations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('training_center_id', sa.Integer(), nullable=False, comment='培训中心ID'),
        sa.Column('acc_id', sa.Integer(), nullable=False, comment='ACC ID'),
        sa.Column('status', sa.String(length=20), nullable=False, comment='授权状态: pending/approved/rejected/revoked'),
        _created_at(),
        sa.ForeignKeyConstraint(['training_center_id'], ['training_centers.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['acc_id'], ['accs.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('training_center_id', 'acc_id', name='uq_tc_acc_authorization'),
    )
    op.create_index('ix_training_center_acc_authorizations_id', 'training_center_acc_authorizations', ['id'])

    op.create_table(
        'courses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('acc_id', sa.Integer(), nullable=False, comment='所属ACC'),
        sa.Column('name', sa.String(length=255), nullable=False, comment='课程名称'),
        sa.Column('status', sa.String(length=20), nullable=False, comment='状态'),
        sa.ForeignKeyConstraint(['acc_id'], ['accs.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_courses_id', 'courses', ['id'])
    op.create_index('ix_courses_acc_id', 'courses', ['acc_id'])
    op.create_index('ix_courses_acc_status', 'courses', ['acc_id', 'status'])

    # 定价与折扣
    op.create_table(
        'course_pricing',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('course_id', sa.Integer(), nullable=False, comment='课程ID'),
        sa.Column('acc_id', sa.Integer(), nullable=False, comment='ACC ID'),
        _money('base_price', comment='单价'),
        sa.Column('currency', sa.String(length=3), nullable=False, comment='货币代码 ISO-4217'),
        _percent('group_commission_percentage', comment='平台佣金比例'),
        _percent('training_center_commission_percentage', comment='培训中心佣金比例'),
        _percent('instructor_commission_percentage', comment='讲师佣金比例'),
        sa.Column('effective_from', sa.Date(), nullable=False, comment='生效开始日期'),
        sa.Column('effective_to', sa.Date(), nullable=True, comment='生效结束日期（含），为空表示长期有效'),
        _created_at(),
        sa.ForeignKeyConstraint(['course_id'], ['courses.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['acc_id'], ['accs.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_course_pricing_id', 'course_pricing', ['id'])
    op.create_index('ix_course_pricing_lookup', 'course_pricing', ['course_id', 'acc_id', 'effective_from'])

    op.create_table(
        'discount_codes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('acc_id', sa.Integer(), nullable=False, comment='ACC ID'),
        sa.Column('code', sa.String(length=50), nullable=False, comment='折扣码（同一ACC内唯一）'),
        sa.Column('discount_type', sa.String(length=20), nullable=False, comment='类型: time_limited/quantity_based'),
        _percent('discount_percentage', comment='折扣比例（%）'),
        sa.Column('applicable_course_ids', sa.JSON(), nullable=True, comment='适用课程ID列表，为空表示全部课程'),
        sa.Column('start_date', sa.Date(), nullable=True, comment='开始日期'),
        sa.Column('end_date', sa.Date(), nullable=True, comment='结束日期'),
        sa.Column('total_quantity', sa.Integer(), nullable=True, comment='总数量（限量折扣）'),
        sa.Column('used_quantity', sa.Integer(), nullable=False, server_default='0', comment='已使用数量'),
        sa.Column('status', sa.String(length=20), nullable=False, comment='状态: active/expired/depleted/inactive'),
        _created_at(),
        _updated_at(),
        sa.ForeignKeyConstraint(['acc_id'], ['accs.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('acc_id', 'code', name='uq_discount_codes_acc_code'),
    )
    op.create_index('ix_discount_codes_id', 'discount_codes', ['id'])
    op.create_index('ix_discount_codes_status', 'discount_codes', ['status'])

    # 交易（code_batches 引用，需先建）
    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_type', sa.String(length=30), nullable=False, comment='交易类型'),
        sa.Column('payer_type', sa.String(length=30), nullable=False, comment='付款方类型'),
        sa.Column('payer_id', sa.Integer(), nullable=False, comment='付款方ID'),
        sa.Column('payee_type', sa.String(length=30), nullable=False, comment='收款方类型'),
        sa.Column('payee_id', sa.Integer(), nullable=False, comment='收款方ID'),
        _money('amount', comment='交易金额'),
        sa.Column('currency', sa.String(length=3), nullable=False, comment='货币代码'),
        _money('commission_amount', nullable=True, comment='平台佣金'),
        _money('provider_amount', nullable=True, comment='收款方所得'),
        sa.Column('payment_method', sa.String(length=20), nullable=False, comment='付款方式'),
        sa.Column('payment_type', sa.String(length=30), nullable=False, server_default='standard', comment='standard/destination_charge'),
        sa.Column('payment_gateway_transaction_id', sa.String(length=200), nullable=True, comment='支付渠道交易号'),
        sa.Column('status', sa.String(length=20), nullable=False, comment='状态: pending/completed/failed/refunded'),
        sa.Column('reference_type', sa.String(length=30), nullable=True, comment='关联业务类型'),
        sa.Column('reference_id', sa.Integer(), nullable=True, comment='关联业务ID'),
        sa.Column('description', sa.Text(), nullable=True, comment='描述'),
        sa.Column('failure_reason', sa.Text(), nullable=True, comment='失败原因'),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True, comment='完成时间'),
        sa.Column('refunded_at', sa.DateTime(timezone=True), nullable=True, comment='退款时间'),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('payment_gateway_transaction_id'),
    )
    op.create_index('ix_transactions_id', 'transactions', ['id'])
    op.create_index('ix_transactions_transaction_type', 'transactions', ['transaction_type'])
    op.create_index('ix_transactions_status', 'transactions', ['status'])
    op.create_index('ix_transactions_completed_at', 'transactions', ['completed_at'])
    op.create_index('ix_transactions_reference', 'transactions', ['reference_type', 'reference_id'])
    op.create_index('ix_transactions_payee', 'transactions', ['payee_type', 'payee_id'])

    # 兑换码
    op.create_table(
        'code_batches',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('training_center_id', sa.Integer(), nullable=False, comment='培训中心ID'),
        sa.Column('acc_id', sa.Integer(), nullable=False, comment='ACC ID'),
        sa.Column('course_id', sa.Integer(), nullable=False, comment='课程ID'),
        sa.Column('quantity', sa.Integer(), nullable=False, comment='购买数量'),
        _money('unit_price', comment='单价'),
        _money('total_amount', comment='总额（折前）'),
        _money('discount_amount', comment='折扣金额'),
        _money('final_amount', comment='应付金额'),
        sa.Column('currency', sa.String(length=3), nullable=False, comment='货币代码'),
        sa.Column('discount_code_id', sa.Integer(), nullable=True, comment='使用的折扣码'),
        sa.Column('payment_method', sa.String(length=20), nullable=False, comment='付款方式: credit_card/manual_payment'),
        sa.Column('payment_status', sa.String(length=20), nullable=False, comment='付款状态'),
        sa.Column('transaction_id', sa.Integer(), nullable=True, comment='关联交易'),
        sa.Column('payment_intent_id', sa.String(length=200), nullable=True, comment='支付意图ID（刷卡）'),
        sa.Column('payment_receipt_url', sa.String(length=500), nullable=True, comment='付款凭证URL（人工付款）'),
        _money('payment_amount', nullable=True, comment='申报付款金额（人工付款）'),
        sa.Column('verified_by', sa.Integer(), nullable=True, comment='审核人用户ID'),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True, comment='审核时间'),
        sa.Column('rejection_reason', sa.Text(), nullable=True, comment='驳回原因'),
        sa.Column('created_by', sa.Integer(), nullable=True, comment='下单用户ID'),
        _created_at(),
        _updated_at(),
        sa.ForeignKeyConstraint(['training_center_id'], ['training_centers.id']),
        sa.ForeignKeyConstraint(['acc_id'], ['accs.id']),
        sa.ForeignKeyConstraint(['course_id'], ['courses.id']),
        sa.ForeignKeyConstraint(['discount_code_id'], ['discount_codes.id']),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_code_batches_id', 'code_batches', ['id'])
    op.create_index('ix_code_batches_training_center_id', 'code_batches', ['training_center_id'])
    op.create_index('ix_code_batches_acc_id', 'code_batches', ['acc_id'])
    op.create_index('ix_code_batches_payment_status', 'code_batches', ['payment_status'])
    op.create_index('ix_code_batches_payment_intent_id', 'code_batches', ['payment_intent_id'])
    op.create_index('ix_code_batches_created_at', 'code_batches', ['created_at'])
    op.create_index('ix_code_batches_acc_status', 'code_batches', ['acc_id', 'payment_status'])

    op.create_table(
        'certificate_codes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False, comment='兑换码（全局唯一）'),
        sa.Column('batch_id', sa.Integer(), nullable=False, comment='所属批次'),
        sa.Column('training_center_id', sa.Integer(), nullable=False, comment='培训中心ID'),
        sa.Column('acc_id', sa.Integer(), nullable=False, comment='ACC ID'),
        sa.Column('course_id', sa.Integer(), nullable=False, comment='课程ID'),
        _money('purchased_price', comment='购入单价'),
        sa.Column('discount_applied', sa.Boolean(), nullable=False, server_default=sa.false(), comment='是否使用折扣'),
        sa.Column('discount_code_id', sa.Integer(), nullable=True, comment='折扣码ID'),
        sa.Column('status', sa.String(length=20), nullable=False, comment='状态: available/used/expired'),
        sa.Column('purchased_at', sa.DateTime(timezone=True), nullable=False, comment='购买时间'),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=True, comment='使用时间'),
        sa.Column('used_for_certificate_id', sa.Integer(), nullable=True, comment='使用该码签发的证书ID'),
        sa.ForeignKeyConstraint(['batch_id'], ['code_batches.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code'),
    )
    op.create_index('ix_certificate_codes_id', 'certificate_codes', ['id'])
    op.create_index('ix_certificate_codes_batch_id', 'certificate_codes', ['batch_id'])
    op.create_index('ix_certificate_codes_tc_status', 'certificate_codes', ['training_center_id', 'status'])

    # 结算与分账
    op.create_table(
        'monthly_settlements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('settlement_month', sa.String(length=7), nullable=False, comment='结算月份 YYYY-MM'),
        sa.Column('acc_id', sa.Integer(), nullable=False, comment='ACC ID'),
        _money('total_revenue', comment='当月收入'),
        _money('group_commission_amount', comment='平台佣金'),
        _money('acc_amount', comment='ACC应得'),
        sa.Column('entry_count', sa.Integer(), nullable=False, server_default='0', comment='分账记录数'),
        sa.Column('status', sa.String(length=20), nullable=False, comment='状态: pending/requested/paid'),
        sa.Column('request_date', sa.DateTime(timezone=True), nullable=True, comment='请款时间'),
        sa.Column('payment_date', sa.DateTime(timezone=True), nullable=True, comment='付款时间'),
        sa.Column('payment_method', sa.String(length=50), nullable=True, comment='付款方式'),
        sa.Column('payment_reference', sa.String(length=200), nullable=True, comment='付款凭证号'),
        _created_at(),
        sa.ForeignKeyConstraint(['acc_id'], ['accs.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('acc_id', 'settlement_month', name='uq_monthly_settlements_acc_month'),
    )
    op.create_index('ix_monthly_settlements_id', 'monthly_settlements', ['id'])

    op.create_table(
        'commission_ledgers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=False, comment='交易ID（每笔交易一条）'),
        sa.Column('acc_id', sa.Integer(), nullable=False, comment='ACC ID'),
        sa.Column('training_center_id', sa.Integer(), nullable=True, comment='培训中心ID'),
        _money('group_commission_amount', comment='平台佣金'),
        _percent('group_commission_percentage', comment='平台佣金比例'),
        _money('acc_commission_amount', comment='ACC所得'),
        _percent('acc_commission_percentage', comment='ACC所得比例'),
        sa.Column('settlement_status', sa.String(length=20), nullable=False, comment='结算状态: pending/settled'),
        sa.Column('settlement_date', sa.Date(), nullable=True, comment='结算日期'),
        sa.Column('monthly_settlement_id', sa.Integer(), nullable=True, comment='所属月度结算单'),
        _created_at(),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id']),
        sa.ForeignKeyConstraint(['acc_id'], ['accs.id']),
        sa.ForeignKeyConstraint(['monthly_settlement_id'], ['monthly_settlements.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('transaction_id'),
    )
    op.create_index('ix_commission_ledgers_id', 'commission_ledgers', ['id'])
    op.create_index('ix_commission_ledgers_acc_id', 'commission_ledgers', ['acc_id'])
    op.create_index('ix_commission_ledgers_settlement_status', 'commission_ledgers', ['settlement_status'])
    op.create_index('ix_commission_ledgers_monthly_settlement_id', 'commission_ledgers', ['monthly_settlement_id'])

    # 转账
    op.create_table(
        'transfers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=False, comment='来源交易'),
        sa.Column('user_type', sa.String(length=30), nullable=False, comment='收款方类型'),
        sa.Column('user_id', sa.Integer(), nullable=False, comment='收款方ID'),
        sa.Column('stripe_account_id', sa.String(length=100), nullable=True, comment='收款方 Stripe Connect 账户'),
        _money('gross_amount', comment='交易总额'),
        _money('commission_amount', comment='平台佣金'),
        _money('net_amount', comment='实际转账金额'),
        sa.Column('currency', sa.String(length=3), nullable=False, comment='货币代码'),
        sa.Column('status', sa.String(length=20), nullable=False, comment='状态: pending/processing/completed/failed/retrying'),
        sa.Column('stripe_transfer_id', sa.String(length=100), nullable=True, comment='Stripe 转账ID'),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0', comment='失败次数'),
        sa.Column('max_retries', sa.Integer(), nullable=False, server_default='3', comment='最大重试次数'),
        sa.Column('error_message', sa.Text(), nullable=True, comment='最近一次错误'),
        sa.Column('next_retry_at', sa.DateTime(timezone=True), nullable=True, comment='下次重试时间'),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True, comment='最近发起时间'),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True, comment='完成时间'),
        sa.Column('failed_at', sa.DateTime(timezone=True), nullable=True, comment='最近失败时间'),
        _created_at(),
        _updated_at(),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_transfers_id', 'transfers', ['id'])
    op.create_index('ix_transfers_transaction_id', 'transfers', ['transaction_id'])
    op.create_index('ix_transfers_status', 'transfers', ['status'])
    op.create_index('ix_transfers_retry_due', 'transfers', ['status', 'next_retry_at'])


def downgrade() -> None:
    # 按依赖逆序删除
    for table in (
        'transfers',
        'commission_ledgers',
        'monthly_settlements',
        'certificate_codes',
        'code_batches',
        'transactions',
        'discount_codes',
        'course_pricing',
        'courses',
        'training_center_acc_authorizations',
        'training_centers',
        'accs',
    ):
        op.drop_table(table)
