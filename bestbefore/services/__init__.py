from bestbefore.services.barcode_service import BarcodeLookupResult, FoodProduct, health_badges, lookup_barcode
from bestbefore.services.category_reminder_service import CategoryReminderService
from bestbefore.services.product_service import ProductService, SyncStatus
from bestbefore.services.reminder_scheduler import ReminderLedger, ReminderScheduler, compute_reminder_slots
from bestbefore.services.sync_queue import MutationQueue, queue_key_for


__all__ = [
    "BarcodeLookupResult",
    "CategoryReminderService",
    "FoodProduct",
    "MutationQueue",
    "ProductService",
    "ReminderLedger",
    "ReminderScheduler",
    "SyncStatus",
    "compute_reminder_slots",
    "health_badges",
    "lookup_barcode",
    "queue_key_for",
]
