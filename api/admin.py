from django.contrib import admin

from api.models import ServiceToken


@admin.register(ServiceToken)
class ServiceTokenAdmin(admin.ModelAdmin):
    list_display = ['name', 'created_at']
    readonly_fields = ['token', 'created_at']
    search_fields = ['name']
