# -*- coding: utf-8 -*-
"""
This is a very basic text example, showing that the network can learn to predict
the next character of a short repeating string.

In this script we build a small single-layer region by hand (no YAML needed),
wrap it in a CharacterRuntime together with a ScalarEncoder and a TextChunker,
and run it for several epochs over the string "abcd abcd ...".

Then we plot the prediction accuracy over time and the final state of the layer.

The comments at the end help to interpret the plots.
"""

import matplotlib.pyplot as plt
from ChatHTM import *
from HTMRegion import *


#Define the layer. The input grid must hold exactly as many bits as the encoder produces.
layer = HTMLayerConfig(num_input_rows=10, num_input_cols=20,
                       num_column_rows=10, num_column_cols=20,
                       min_overlap=2, max_active_cols=8,
                       cells_per_column=4, max_new_synapses=8,
                       activation_threshold=4, learning_threshold=3)
config = HTMRegionConfig([layer])

#Define the encoder. Bytes are 0-255 but plain text stays below 128.
enc = ScalarEncoder(n=200, w=9, minval=0, maxval=127)

#Define the text source.
chunker = TextChunker.from_string('abcd abcd abcd abcd ')

#Put it all together.
rt = CharacterRuntime.from_config(config, chunker, enc, name='abcd')

#Run 40 epochs, recording the running accuracy after each one.
accuracy = []
for epoch in range(40):
    rt.step(chunker.size())
    accuracy.append(rt.prediction_accuracy())
    if epoch % 10 == 0:
        print("Epoch {}: accuracy so far {:.1f}%".format(epoch, 100*accuracy[-1]))

#Print the last few steps with their context.
rt.set_log_text(True)
rt.step(5)

#Now we'll plot some results.
fig, (ax1,ax2) = plt.subplots(1,2)

#First, the running accuracy. It starts at 0 because an untrained network
#makes no predictions, and climbs once the network has seen the string a few times.
ax1.plot(accuracy, c='green')
ax1.set_title('Running accuracy')

#Then the final state of the layer. Blue columns are active, yellow columns were
#predicted for this character but stayed off, and green columns are both.
plot_snapshot(rt.snapshot(), ax2)

### Interpreting the snapshot
#After training, the active columns for the current character should mostly be
#green: the previous character already made their cells predictive, so the
#columns turned on without bursting. Blue columns burst because nothing predicted
#them. The runtime counts a step as correct when more than half of the active
#columns had a predicted cell.

plt.show()
