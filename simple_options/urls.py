from django.urls import path

from simple_options.services import OptionStore
from simple_options.views import OptionBatchView, OptionListView, OptionView

app_name = "simple_options"

# One store per process, so the table is provisioned once and not per request.
option_store = OptionStore()

urlpatterns = [
    path("options/batch/", OptionBatchView.as_view(store=option_store), name="option-batch"),
    path("options/<str:key>/", OptionView.as_view(store=option_store), name="option-detail"),
    path("options/", OptionListView.as_view(store=option_store), name="option-list"),
]
