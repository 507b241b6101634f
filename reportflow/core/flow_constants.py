from reportflow.core.state_machine import ENTREGA, TIENDA_CERRADA, BASCULA

# Evidence Keys

# Step: 4a (entrega)
# Meaning: exhibitor as found on arrival
EV_ARRIVAL_EXHIBIT = "arrival_exhibit"

# Step: 6 (entrega)
# Meaning: product arranged on the exhibitor
EV_PRODUCT_ARRANGED = "product_arranged"

# Step: 7a (entrega, waste answered "yes")
EV_WASTE = "waste_evidence"

# Step: 7b (entrega, waste answered "no")
# Meaning: signed remission; either this or EV_WASTE records the waste decision
EV_REMISSION = "remission"

# Step: 8 (entrega)
# OCR: delivery ticket; gated by ticketExtractionConfirmed
EV_TICKET = "ticket"

# Step: 10 (entrega, return answered "yes")
# OCR: return ticket; gated by returnTicketExtractionConfirmed
EV_RETURN_TICKET = "return_ticket"

# Step: 4b (tienda_cerrada)
EV_FACADE = "facade"

# Step: 4c (bascula)
EV_SCALE = "scale"

EVIDENCE_KEYS_BY_TYPE = {
    ENTREGA: (EV_ARRIVAL_EXHIBIT, EV_PRODUCT_ARRANGED, EV_WASTE, EV_REMISSION, EV_TICKET, EV_RETURN_TICKET),
    TIENDA_CERRADA: (EV_FACADE,),
    BASCULA: (EV_SCALE,),
}


# Steps

STEP_ARRIVAL = "4a"
STEP_FACADE = "4b"
STEP_SCALE = "4c"
STEP_INCIDENT_CHECK = "incident_check"
STEP_INCIDENT_FORM = "5"
STEP_PRODUCT_ARRANGED = "6"
STEP_WASTE_CHECK = "waste_check"
STEP_WASTE_EVIDENCE = "7a"
STEP_REMISSION = "7b"
STEP_TICKET = "8"
STEP_TICKET_CONFIRM = "9"
STEP_RETURN_CHECK = "return_check"
STEP_RETURN_TICKET = "10"
STEP_RETURN_CONFIRM = "11"
STEP_FINISH = "finish"

# Pseudo-steps: the driver belongs in the support chat, not in the wizard
STEP_CHAT = "chat"
STEP_CHAT_REDIRECT = "chat_redirect"
CHAT_STEPS = (STEP_CHAT, STEP_CHAT_REDIRECT)

# Ordered wizard sequence per type. The first entry is the type's entry step.
STEPS_BY_TYPE = {
    ENTREGA: (
        STEP_ARRIVAL,
        STEP_INCIDENT_CHECK,
        STEP_INCIDENT_FORM,
        STEP_PRODUCT_ARRANGED,
        STEP_WASTE_CHECK,
        STEP_WASTE_EVIDENCE,
        STEP_REMISSION,
        STEP_TICKET,
        STEP_TICKET_CONFIRM,
        STEP_RETURN_CHECK,
        STEP_RETURN_TICKET,
        STEP_RETURN_CONFIRM,
        STEP_FINISH,
    ),
    TIENDA_CERRADA: (STEP_FACADE, STEP_FINISH),
    BASCULA: (STEP_SCALE, STEP_FINISH),
}

# Evidence-named links still used by older clients
STEP_ALIASES_BY_TYPE = {
    ENTREGA: {
        EV_ARRIVAL_EXHIBIT: STEP_ARRIVAL,
        EV_PRODUCT_ARRANGED: STEP_PRODUCT_ARRANGED,
        EV_TICKET: STEP_TICKET,
    },
    TIENDA_CERRADA: {EV_FACADE: STEP_FACADE},
    BASCULA: {EV_SCALE: STEP_SCALE},
}

# Forward navigation: (type, step) -> next step, or {answer: next step} at yes/no screens
ANSWER_YES = "yes"
ANSWER_NO = "no"

NAVIGATION_BY_TYPE = {
    ENTREGA: {
        STEP_ARRIVAL: STEP_INCIDENT_CHECK,
        STEP_INCIDENT_CHECK: {ANSWER_YES: STEP_INCIDENT_FORM, ANSWER_NO: STEP_PRODUCT_ARRANGED},
        STEP_INCIDENT_FORM: STEP_PRODUCT_ARRANGED,
        STEP_PRODUCT_ARRANGED: STEP_WASTE_CHECK,
        STEP_WASTE_CHECK: {ANSWER_YES: STEP_WASTE_EVIDENCE, ANSWER_NO: STEP_REMISSION},
        STEP_WASTE_EVIDENCE: STEP_TICKET,
        STEP_REMISSION: STEP_TICKET,
        STEP_TICKET: STEP_TICKET_CONFIRM,
        STEP_TICKET_CONFIRM: STEP_RETURN_CHECK,
        STEP_RETURN_CHECK: {ANSWER_YES: STEP_RETURN_TICKET, ANSWER_NO: STEP_FINISH},
        STEP_RETURN_TICKET: STEP_RETURN_CONFIRM,
        STEP_RETURN_CONFIRM: STEP_FINISH,
    },
    TIENDA_CERRADA: {
        STEP_FACADE: STEP_CHAT_REDIRECT,
    },
    BASCULA: {
        STEP_SCALE: STEP_FINISH,
    },
}
