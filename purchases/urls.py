from django.urls import path
from . import views

app_name = 'purchases'

urlpatterns = [
    path('', views.all_purchased_courses, name='purchased_courses'),
    path('checkout/create-checkout-session/', views.create_checkout_session, name='create_checkout_session'),
    path('webhook/', views.konnect_webhook, name='webhook'),
    path('course/<int:course_id>/detail-with-status/', views.course_detail_with_purchase_status, name='course_detail_with_status'),
]
