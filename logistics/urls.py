"""
Logistics App URLs
"""

from django.urls import path

from .views import JobCreateView, JobTakeView, JobDeliverView, NotificationListView

urlpatterns = [
    # Jobs
    path('jobs/', JobCreateView.as_view(), name='job-create'),
    path('jobs/<int:job_id>/take/', JobTakeView.as_view(), name='job-take'),
    path('jobs/<int:job_id>/deliver/', JobDeliverView.as_view(), name='job-deliver'),

    # Offer receipts (audit)
    path('notifications/', NotificationListView.as_view(), name='notification-list'),
]
