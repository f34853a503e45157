from django import forms

from .choices import HospitalType, PaymentMethod
from .directory import DISTANCE_CHOICES


class HospitalFilterForm(forms.Form):
    """GET filters on the hospital directory. Every field is optional."""
    q = forms.CharField(
        required=False,
        max_length=120,
        label='Search',
        widget=forms.TextInput(attrs={
            'class': 'form-control',
            'placeholder': 'Search hospitals by name',
        }),
    )
    distance = forms.ChoiceField(
        required=False,
        choices=DISTANCE_CHOICES,
        initial='any',
        widget=forms.Select(attrs={'class': 'form-select'}),
    )
    speciality = forms.CharField(
        required=False,
        max_length=120,
        widget=forms.Select(attrs={'class': 'form-select'}),
    )
    type = forms.ChoiceField(
        required=False,
        choices=[('all', 'All hospitals')] + list(HospitalType.choices),
        initial='all',
        widget=forms.Select(attrs={'class': 'form-select'}),
    )

    def __init__(self, *args, specialities=(), **kwargs):
        super().__init__(*args, **kwargs)
        self.fields['speciality'].widget.choices = (
            [('any', 'Any Speciality')] + [(s, s) for s in specialities]
        )

    def max_distance(self):
        value = self.cleaned_data.get('distance') if self.is_valid() else None
        if not value or value == 'any':
            return None
        return float(value)

    def api_filters(self) -> dict:
        """The subset of filters the hospital service applies itself."""
        if not self.is_valid():
            return {}
        filters = {}
        hospital_type = self.cleaned_data.get('type')
        if hospital_type and hospital_type != 'all':
            filters['type'] = hospital_type
        speciality = self.cleaned_data.get('speciality')
        if speciality and speciality != 'any':
            filters['speciality'] = speciality
        return filters


class VisitDetailsForm(forms.Form):
    """
    Final-step details. The reason is checked by the confirmation flow so that
    the same message is shown whether it comes from here or from the session.
    """
    reason_for_visit = forms.CharField(
        required=False,
        max_length=500,
        label='Reason for visit',
        widget=forms.Textarea(attrs={
            'class': 'form-control',
            'rows': 3,
            'placeholder': 'Briefly describe your symptoms or the purpose of your visit',
        }),
    )
    additional_notes = forms.CharField(
        required=False,
        max_length=1000,
        label='Additional notes (optional)',
        widget=forms.Textarea(attrs={
            'class': 'form-control',
            'rows': 3,
            'placeholder': 'Allergies, accessibility needs, or anything else we should know',
        }),
    )
    has_insurance = forms.BooleanField(
        required=False,
        label='I have health insurance',
        widget=forms.CheckboxInput(attrs={'class': 'form-check-input'}),
    )
    payment_method = forms.ChoiceField(
        choices=PaymentMethod.choices,
        initial=PaymentMethod.CARD,
        label='Payment method',
        widget=forms.RadioSelect,
    )
