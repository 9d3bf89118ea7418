from django.urls import path, include

urlpatterns = [
    path('api/sessions/', include('apps.therapy_sessions.urls')),
    path('api/subscriptions/', include('apps.subscriptions.urls')),
    path('api/therapists/', include('apps.therapists.urls')),
    path('api/pricing/', include('apps.pricing.urls')),
    path('api/payments/', include('apps.payments.urls')),
]
