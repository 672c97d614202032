from django.urls import path
from .views import (
    dashboard_stats, dashboard_activity, dashboard_alerts,
    customer_list_create, customer_detail, customer_status, organization_subscription,
    package_list_create, package_detail,
    subscription_list_create, subscription_detail, subscription_remind,
    billing_stats, billing_data, billing_overdue, billing_analytics_view,
    billing_suspend_unpaid, billing_mrr, billing_export,
    payment_create, payment_detail, payment_status, payment_share,
    invoice_list_create,
    settings_view, settings_test_email,
)

urlpatterns = [
    # Dashboard
    path('dashboard/stats/', dashboard_stats, name='saas-dashboard-stats'),
    path('dashboard/activity/', dashboard_activity, name='saas-dashboard-activity'),
    path('dashboard/alerts/', dashboard_alerts, name='saas-dashboard-alerts'),

    # Customers
    path('customers/', customer_list_create, name='saas-customer-list-create'),
    path('customers/<int:pk>/', customer_detail, name='saas-customer-detail'),
    path('customers/<int:pk>/status/', customer_status, name='saas-customer-status'),
    path('organizations/<int:pk>/subscription/', organization_subscription, name='saas-organization-subscription'),

    # Packages and subscriptions
    path('packages/', package_list_create, name='saas-package-list-create'),
    path('packages/<int:pk>/', package_detail, name='saas-package-detail'),
    path('subscriptions/', subscription_list_create, name='saas-subscription-list-create'),
    path('subscriptions/<int:pk>/', subscription_detail, name='saas-subscription-detail'),
    path('subscriptions/<int:pk>/remind/', subscription_remind, name='saas-subscription-remind'),

    # Billing
    path('billing/stats/', billing_stats, name='saas-billing-stats'),
    path('billing/data/', billing_data, name='saas-billing-data'),
    path('billing/overdue/', billing_overdue, name='saas-billing-overdue'),
    path('billing/analytics/', billing_analytics_view, name='saas-billing-analytics'),
    path('billing/suspend-unpaid/', billing_suspend_unpaid, name='saas-billing-suspend-unpaid'),
    path('billing/mrr/', billing_mrr, name='saas-billing-mrr'),
    path('billing/export/', billing_export, name='saas-billing-export'),
    path('payments/', payment_create, name='saas-payment-create'),
    path('payments/<int:pk>/', payment_detail, name='saas-payment-detail'),
    path('payments/<int:pk>/status/', payment_status, name='saas-payment-status'),
    path('payments/<int:pk>/share/', payment_share, name='saas-payment-share'),
    path('invoices/', invoice_list_create, name='saas-invoice-list-create'),

    # Settings
    path('settings/', settings_view, name='saas-settings'),
    path('settings/test-email/', settings_test_email, name='saas-settings-test-email'),
]
