from django.urls import path
from . import views

app_name = 'billing'

urlpatterns = [
    path('api/billing/proration', views.ProrationPreviewView.as_view(), name='proration_preview'),
    path('api/billing/subscriptions/<int:subscription_id>/change', views.SubscriptionChangeView.as_view(), name='subscription_change'),
]
