from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path("", include("payroll.urls")),
    path("", include("billing.urls")),
    path("admin/", admin.site.urls),
]
