from django import forms
from django.forms import formset_factory

from .logic import TASK_FIELDS


class TaskForm(forms.Form):
    SourcePath = forms.CharField(required=False, strip=False)
    TargetPath = forms.CharField(required=False, strip=False)
    TargetList = forms.CharField(required=False, strip=False)
    TargetListRelativePath = forms.CharField(required=False, strip=False)

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        for name in TASK_FIELDS:
            self.fields[name].widget.attrs.update({"placeholder": name})


TaskFormSet = formset_factory(TaskForm, extra=0)


class EditorActionForm(forms.Form):
    revision = forms.IntegerField(widget=forms.HiddenInput)
    # "save", "add", "download" or "remove-<index>"
    action = forms.RegexField(regex=r"^(save|add|download|remove-\d+)$")

    def parsed_action(self):
        action = self.cleaned_data["action"]
        if action.startswith("remove-"):
            return "remove", int(action[len("remove-"):])
        return action, None


class ImportForm(forms.Form):
    file = forms.FileField()
