# Overview: Built-in prosthesis catalog (stage templates and default lead times).

"""
Prosthesis types known to the lab.

Each type carries the ordered stage template seeded onto new cases and the
estimated lead time in business days used for the default SLA date.
Templates are immutable: editing one here never touches existing cases.
"""

from __future__ import annotations

from dataclasses import dataclass


CATEGORIES = {
    "FIXED": "Fixed prosthesis",
    "REMOVABLE": "Removable prosthesis",
    "IMPLANT": "Implant-supported",
    "ORTHODONTIC": "Orthodontics",
    "OTHER": "Other",
}


@dataclass(frozen=True)
class ProsthesisType:
    id: str
    name: str
    category: str
    description: str
    stage_template: tuple[str, ...]
    estimated_lead_days: int

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "stage_template": list(self.stage_template),
            "estimated_lead_days": self.estimated_lead_days,
        }


PROSTHESIS_TYPES: tuple[ProsthesisType, ...] = (
    # Fixed
    ProsthesisType(
        "pfm-crown", "Porcelain-fused-to-metal crown", "FIXED",
        "Metal substructure with ceramic veneering.",
        ("Stone model", "Wax-up", "Casting", "Oxidation", "Opaque layer", "Ceramic build-up", "Glazing", "Finishing"),
        7,
    ),
    ProsthesisType(
        "zirconia-crown", "Zirconia crown", "FIXED",
        "Monolithic or layered zirconia crown.",
        ("Scanning", "CAD design", "Milling", "Sintering", "Staining/Cutback", "Glazing", "Finishing"),
        5,
    ),
    ProsthesisType(
        "lithium-disilicate-crown", "Lithium disilicate crown", "FIXED",
        "Pressed or milled lithium disilicate crown.",
        ("Scanning", "CAD design", "Pressing/Milling", "Crystallization", "Staining", "Glazing", "Finishing"),
        5,
    ),
    ProsthesisType(
        "veneer", "Veneer", "FIXED",
        "Ceramic laminate veneers (disilicate or feldspathic).",
        ("Stone model", "Diagnostic wax-up", "Scanning", "CAD design", "Pressing/Milling", "Adjustment", "Glazing", "Finishing"),
        7,
    ),
    ProsthesisType(
        "inlay-onlay", "Inlay/Onlay", "FIXED",
        "Partial indirect restorations.",
        ("Stone model", "Scanning", "CAD design", "Milling/Pressing", "Adjustment", "Glazing", "Finishing"),
        5,
    ),
    ProsthesisType(
        "fixed-bridge", "Fixed bridge", "FIXED",
        "Multi-unit fixed prosthesis.",
        ("Stone model", "Wax-up", "Casting/Milling", "Framework try-in", "Ceramic build-up", "Glazing", "Finishing"),
        10,
    ),
    ProsthesisType(
        "cast-post-core", "Cast post and core", "FIXED",
        "Cast intraradicular retainer.",
        ("Stone model", "Wax-up", "Investing", "Casting", "Devesting", "Finishing"),
        3,
    ),
    # Removable
    ProsthesisType(
        "cast-partial-denture", "Cast partial denture", "REMOVABLE",
        "Removable partial denture with metal framework.",
        ("Stone model", "Surveying", "Duplication", "Wax-up", "Investing", "Casting", "Devesting",
         "Framework try-in", "Teeth setup", "Functional try-in", "Acrylic processing", "Finishing/Polishing"),
        12,
    ),
    ProsthesisType(
        "complete-denture", "Complete denture", "REMOVABLE",
        "Upper or lower complete denture.",
        ("Stone model", "Record base", "Wax rim", "Teeth setup", "Functional try-in", "Acrylic processing", "Finishing/Polishing"),
        10,
    ),
    ProsthesisType(
        "flexible-denture", "Flexible denture", "REMOVABLE",
        "Flexible nylon partial denture.",
        ("Stone model", "Teeth setup", "Injection", "Finishing/Polishing"),
        5,
    ),
    ProsthesisType(
        "provisional", "Provisional", "REMOVABLE",
        "Acrylic or bis-acryl provisional restoration.",
        ("Stone model", "Wax-up", "Acrylic processing", "Finishing"),
        2,
    ),
    # Implant
    ProsthesisType(
        "implant-hybrid-bar", "Implant hybrid (bar)", "IMPLANT",
        "Full-arch bar-retained prosthesis (All-on-4, All-on-6).",
        ("Stone model", "Scanning", "Bar CAD", "Bar milling", "Bar try-in", "Teeth setup",
         "Functional try-in", "Acrylic processing", "Finishing/Polishing"),
        15,
    ),
    ProsthesisType(
        "implant-crown", "Implant crown", "IMPLANT",
        "Single cemented or screw-retained implant crown.",
        ("Stone model", "Scanning", "CAD design", "Milling", "Ceramic build-up", "Glazing", "Finishing"),
        7,
    ),
    ProsthesisType(
        "overdenture", "Overdenture", "IMPLANT",
        "Implant-retained removable prosthesis with attachments.",
        ("Stone model", "Record base", "Teeth setup", "Functional try-in", "Attachment pick-up", "Acrylic processing", "Finishing/Polishing"),
        10,
    ),
    ProsthesisType(
        "custom-abutment", "Custom abutment", "IMPLANT",
        "Milled titanium or zirconia abutment.",
        ("Scanning", "CAD design", "Milling", "Finishing"),
        3,
    ),
    # Orthodontic
    ProsthesisType(
        "clear-aligner", "Clear aligner", "ORTHODONTIC",
        "Thermoformed clear aligners.",
        ("Scanning", "Digital planning", "3D model printing", "Thermoforming", "Trimming", "Polishing", "Kit assembly"),
        5,
    ),
    ProsthesisType(
        "retainer", "Retainer", "ORTHODONTIC",
        "Fixed or removable retainer.",
        ("Stone model", "Wire bending/Acrylic processing", "Finishing"),
        3,
    ),
    ProsthesisType(
        "occlusal-splint", "Occlusal splint", "ORTHODONTIC",
        "Acrylic bite splint.",
        ("Stone model", "Articulator mounting", "Acrylic processing", "Occlusal adjustment", "Polishing"),
        5,
    ),
    # Other
    ProsthesisType(
        "study-model", "Study model", "OTHER",
        "Stone or 3D-printed model for planning.",
        ("Pouring/Printing", "Trimming/Base", "Finishing"),
        2,
    ),
    ProsthesisType(
        "surgical-guide", "Surgical guide", "OTHER",
        "Guide for implant placement.",
        ("Scanning", "Digital planning", "CAD design", "3D printing", "Finishing"),
        5,
    ),
)
