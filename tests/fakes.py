"""In-memory stand-ins for the chat clients, backends and the EHR store."""

import itertools

from llm_backends import GenerationBackend
from models import Encounter, Observation, Patient


class FakeChatClient:
    """Replays scripted replies; an Exception in the script is raised instead."""

    label = "llama"

    def __init__(self, *replies):
        self.replies = list(replies)
        self.sent = []
        self.closed = False

    async def send(self, messages):
        self.sent.append(list(messages))
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def close(self):
        self.closed = True


class FakeManagedBackend(GenerationBackend):
    name = "gemini"
    managed = True

    def __init__(self, result=None, error=None, text=""):
        self.result = result
        self.error = error
        self.text = text
        self.prompts = []
        self.close_calls = 0

    async def generate_structured(self, prompt, output_model):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return output_model.model_validate(self.result)

    async def generate_text(self, system, messages):
        self.prompts.append((system, list(messages)))
        if self.error:
            raise self.error
        return self.text

    async def close(self):
        self.close_calls += 1


class FakeEhr:
    """Same surface as EhrClient, backed by dicts and lists."""

    def __init__(self):
        self.patients = {}
        self.observations = []
        self.encounters = []
        self.notes = []
        self._ids = itertools.count(1)

    def _id(self, prefix):
        return f"{prefix}{next(self._ids)}"

    def list_patients(self):
        return list(self.patients.values())

    def get_patient(self, patient_id):
        return self.patients.get(patient_id)

    def create_patient(self, data):
        patient = Patient(id=self._id("p"), **data.model_dump())
        self.patients[patient.id] = patient
        return patient

    def update_patient(self, patient_id, data):
        patient = Patient(id=patient_id, **data.model_dump())
        self.patients[patient_id] = patient
        return patient

    def delete_patient_and_related_data(self, patient_id):
        self.patients.pop(patient_id, None)
        self.observations = [o for o in self.observations if o.patient_id != patient_id]
        self.encounters = [e for e in self.encounters if e.patient_id != patient_id]
        self.notes = [n for n in self.notes if n["patientId"] != patient_id]

    def get_observations(self, patient_id, count=5):
        return [o for o in reversed(self.observations) if o.patient_id == patient_id][:count]

    def get_encounters(self, patient_id, count=5):
        return [e for e in reversed(self.encounters) if e.patient_id == patient_id][:count]

    def add_observation(self, patient_id, data):
        obs = Observation(id=self._id("o"), patient_id=patient_id, **data.model_dump())
        self.observations.append(obs)
        return obs

    def add_encounter(self, patient_id, data):
        enc = Encounter(id=self._id("e"), patient_id=patient_id, **data.model_dump())
        self.encounters.append(enc)
        return enc

    def post_note(self, patient_id, content):
        note_id = self._id("n")
        self.notes.append({"id": note_id, "patientId": patient_id, "content": content})
        return note_id
