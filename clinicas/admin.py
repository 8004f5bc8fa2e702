# clinicas/admin.py
from django.contrib import admin

from .models import Clinic, Payment, Person, Service


@admin.register(Clinic)
class ClinicAdmin(admin.ModelAdmin):
    list_display = ("name", "rfc", "fiscal_regime", "zip_code", "updated_at")
    search_fields = ("name", "rfc")
    filter_horizontal = ("members",)


@admin.register(Person)
class PersonAdmin(admin.ModelAdmin):
    list_display = ("full_name", "clinic", "rfc", "fiscal_regime", "cfdi_use")
    list_filter = ("clinic",)
    search_fields = ("full_name", "rfc")


@admin.register(Service)
class ServiceAdmin(admin.ModelAdmin):
    list_display = ("name", "clinic", "sat_product_code", "sat_unit_code", "sat_tax_object_code")
    list_filter = ("clinic",)


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("id", "clinic", "person", "service", "amount", "payment_method", "created_at")
    list_filter = ("payment_method", "clinic")
    ordering = ("-created_at",)
