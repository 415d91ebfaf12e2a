"""Stock voucher management: commands and handler.

Handlers only decide and persist the voucher. Stock moved on approval is
applied by the workflow around the command, so a failed save can be undone.
"""

import json

from protean import handle
from protean.fields import Boolean, Identifier, String, Text
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.voucher.voucher import StockVoucher, VoucherSource, VoucherType


@storefront.command(part_of="StockVoucher")
class CreateStockVoucher:
    voucher_type = String(required=True, choices=VoucherType)
    reason = String(required=True, max_length=500)
    items = Text(required=True)  # JSON: normalized line items
    notes = String(max_length=1000)
    source = String(choices=VoucherSource, default=VoucherSource.MANUAL.value)
    related_order_id = Identifier()
    settled_by_order = Boolean(default=False)
    created_by = String(max_length=255)


@storefront.command(part_of="StockVoucher")
class UpdateStockVoucher:
    voucher_id = Identifier(required=True)
    reason = String(max_length=500)
    notes = String(max_length=1000)
    items = Text()  # JSON: replaces every line when given


@storefront.command(part_of="StockVoucher")
class ApproveStockVoucher:
    voucher_id = Identifier(required=True)
    approved_by = String(max_length=255)


@storefront.command(part_of="StockVoucher")
class RejectStockVoucher:
    voucher_id = Identifier(required=True)
    rejected_by = String(max_length=255)
    rejection_reason = String(max_length=500)


@storefront.command(part_of="StockVoucher")
class CancelStockVoucher:
    voucher_id = Identifier(required=True)
    cancelled_by = String(max_length=255)


@storefront.command(part_of="StockVoucher")
class DeleteStockVoucher:
    voucher_id = Identifier(required=True)
    deleted_by = String(max_length=255)


@storefront.command_handler(part_of=StockVoucher)
class StockVoucherHandler:
    @handle(CreateStockVoucher)
    def create_stock_voucher(self, command):
        items_data = json.loads(command.items) if isinstance(command.items, str) else command.items
        voucher = StockVoucher.create(
            voucher_type=command.voucher_type,
            reason=command.reason,
            items_data=items_data,
            source=command.source,
            notes=command.notes,
            related_order_id=command.related_order_id,
            settled_by_order=command.settled_by_order,
            created_by=command.created_by,
        )
        current_domain.repository_for(StockVoucher).add(voucher)
        return str(voucher.id)

    @handle(UpdateStockVoucher)
    def update_stock_voucher(self, command):
        items_data = json.loads(command.items) if isinstance(command.items, str) else command.items
        repo = current_domain.repository_for(StockVoucher)
        voucher = repo.get(command.voucher_id)
        voucher.update_details(reason=command.reason, notes=command.notes, items_data=items_data)
        repo.add(voucher)

    @handle(ApproveStockVoucher)
    def approve_stock_voucher(self, command):
        repo = current_domain.repository_for(StockVoucher)
        voucher = repo.get(command.voucher_id)
        voucher.approve(command.approved_by)
        repo.add(voucher)

    @handle(RejectStockVoucher)
    def reject_stock_voucher(self, command):
        repo = current_domain.repository_for(StockVoucher)
        voucher = repo.get(command.voucher_id)
        voucher.reject(rejected_by=command.rejected_by, rejection_reason=command.rejection_reason)
        repo.add(voucher)

    @handle(CancelStockVoucher)
    def cancel_stock_voucher(self, command):
        repo = current_domain.repository_for(StockVoucher)
        voucher = repo.get(command.voucher_id)
        voucher.cancel(cancelled_by=command.cancelled_by)
        repo.add(voucher)

    @handle(DeleteStockVoucher)
    def delete_stock_voucher(self, command):
        repo = current_domain.repository_for(StockVoucher)
        voucher = repo.get(command.voucher_id)
        voucher.ensure_deletable()
        repo._dao.delete(voucher)
